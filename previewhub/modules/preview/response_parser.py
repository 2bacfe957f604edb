"""
AI Response Parser
Extracts generated files from a code-generation response so they can be previewed
"""

import re
from typing import Dict, List

from previewhub.core.logging_config import logger
from previewhub.modules.preview.files import FileRecord


class AIResponseParser:
    """Parses code-generation responses into preview file mappings"""

    # ```html:index.html  /  ```css
    CODE_BLOCK_PATTERN = re.compile(r'```(\w+)(?::([^\n]+))?\n(.*?)```', re.DOTALL)

    # <file operation="create" path="src/App.tsx">...</file>
    XML_FILE_PATTERN = re.compile(
        r'<file\s+operation="(create|modify)"\s+path="([^"]+)">(.*?)</file>',
        re.DOTALL
    )

    DEFAULT_FILENAMES = {
        'html': 'index.html',
        'css': 'styles.css',
        'javascript': 'script.js',
        'js': 'script.js',
        'python': 'main.py',
        'py': 'main.py',
        'typescript': 'index.ts',
        'ts': 'index.ts',
        'json': 'data.json',
        'php': 'index.php',
        'react': 'App.jsx',
        'vue': 'App.vue',
    }

    LANGUAGE_ALIASES = {
        'js': 'javascript',
        'ts': 'typescript',
        'py': 'python',
        'htm': 'html',
        'jsx': 'javascript',
        'tsx': 'typescript',
    }

    def parse_response(self, response: str) -> Dict:
        """
        Parse a response for generated files

        Supports:
        - Fenced blocks: ```lang:path``` (path optional, defaulted by language)
        - XML blocks: <file operation="create" path="...">

        Returns:
            Dict with files (path -> FileRecord) and the file order
        """
        files: Dict[str, FileRecord] = {}

        for path, record in self._parse_code_blocks(response):
            files[path] = record

        for path, record in self._parse_xml_format(response):
            files[path] = record

        return {
            "files": files,
            "paths": list(files),
            "raw_response": response,
        }

    def extract_files(self, response: str) -> Dict[str, FileRecord]:
        """Only the file mapping, ready for PreviewServerManager"""
        return self.parse_response(response)["files"]

    def normalize_language(self, language: str) -> str:
        return self.LANGUAGE_ALIASES.get(language, language)

    def default_filename(self, language: str) -> str:
        return self.DEFAULT_FILENAMES.get(language, f"file.{language}")

    def _parse_code_blocks(self, response: str) -> List[tuple]:
        blocks = []
        for match in self.CODE_BLOCK_PATTERN.finditer(response):
            language = match.group(1).lower()
            path = (match.group(2) or "").strip() or self.default_filename(language)
            content = match.group(3).strip()

            if content:
                blocks.append((path, FileRecord(content=content, type=self.normalize_language(language))))

        logger.debug(f"Parsed {len(blocks)} fenced file blocks")
        return blocks

    def _parse_xml_format(self, response: str) -> List[tuple]:
        blocks = []
        for match in self.XML_FILE_PATTERN.finditer(response):
            _, path, content = match.groups()
            content = content.strip()
            if content:
                blocks.append((path.strip(), FileRecord(content=content)))
        return blocks


# Singleton instance
ai_response_parser = AIResponseParser()
