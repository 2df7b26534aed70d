"""Text detection and the optional lossy normalization pass."""

import os
import re

TEXT_EXTENSIONS = frozenset([
    '.js', '.ts', '.jsx', '.tsx', '.json', '.txt', '.md', '.yml', '.yaml',
    '.xml', '.html', '.css', '.scss', '.py', '.java', '.c', '.cpp', '.h',
    '.hpp', '.go', '.rs', '.rb', '.php', '.sql', '.sh', '.bash', '.sol',
])

_CODE_INDICATORS = [
    re.compile(r'function\s+\w+\s*\('),
    re.compile(r'class\s+\w+'),
    re.compile(r'const\s+\w+\s*='),
    re.compile(r'import\s+.*from'),
    re.compile(r'export\s+(default\s+)?'),
]

_TRAILING_WS_RE = re.compile(r'[ \t]+$', re.MULTILINE)
_BLANK_RUN_RE = re.compile(r'\n{3,}')
_BLOCK_COMMENT_RE = re.compile(r'/\*[\s\S]*?\*/')
# "//" preceded by ":" is a URL scheme, not a comment
_LINE_COMMENT_RE = re.compile(r'(?<!:)//.*$', re.MULTILINE)
_EMPTY_LINE_RE = re.compile(r'^\s*\n', re.MULTILINE)


def is_text_file(path: str) -> bool:
    """Return True if ``path`` has an extension from the text allow-list."""
    return os.path.splitext(path)[1].lower() in TEXT_EXTENSIONS


def is_source_code(content: str) -> bool:
    """Heuristically decide whether ``content`` looks like program source."""
    return any(pattern.search(content) for pattern in _CODE_INDICATORS)


def normalize_text(content: str) -> str:
    """Unify line endings, drop trailing whitespace and collapse blank runs."""
    optimized = content.replace('\r\n', '\n')
    optimized = _TRAILING_WS_RE.sub('', optimized)
    return _BLANK_RUN_RE.sub('\n\n', optimized)


def strip_comments(content: str) -> str:
    """Remove C-style block and line comments, then empty lines."""
    stripped = _BLOCK_COMMENT_RE.sub('', content)
    stripped = _LINE_COMMENT_RE.sub('', stripped)
    return _EMPTY_LINE_RE.sub('', stripped)


def apply_text_optimizations(content: str, strip_source_comments: bool = True) -> str:
    """Run the lossy normalization pass used before compressing text files.

    Args:
        content: Decoded file text
        strip_source_comments: Also strip comments when the text looks like code

    Returns:
        The normalized text
    """
    optimized = normalize_text(content)
    if strip_source_comments and is_source_code(content):
        optimized = strip_comments(optimized)
    return optimized
