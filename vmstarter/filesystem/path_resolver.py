"""
Path Resolver Module

Parsing and normalisation of guest filesystem paths.

Author: YSNRFD
Version: 1.0.0
"""

from dataclasses import dataclass
from typing import List, Tuple


@dataclass
class ParsedPath:
    """A parsed path with its components."""
    is_absolute: bool
    components: List[str]


class PathResolver:
    """
    Resolves and manipulates guest paths.

    Guest paths are always interpreted relative to the filesystem root.
    """

    @staticmethod
    def parse(path: str) -> ParsedPath:
        """
        Parse a path into components.

        Args:
            path: Path string to parse

        Returns:
            ParsedPath with components
        """
        is_absolute = path.startswith('/')
        components = [c for c in path.split('/') if c and c != '.']
        return ParsedPath(is_absolute=is_absolute, components=components)

    @staticmethod
    def components(path: str) -> List[str]:
        """Normalised components of ``path`` relative to the root."""
        result: List[str] = []
        for component in PathResolver.parse(path).components:
            if component == '..':
                if result:
                    result.pop()
            else:
                result.append(component)
        return result

    @staticmethod
    def normalize(path: str) -> str:
        """
        Normalize a path by resolving . and .. against the root.

        Args:
            path: Path to normalize

        Returns:
            Absolute normalized path string
        """
        return '/' + '/'.join(PathResolver.components(path))

    @staticmethod
    def split_leaf(path: str) -> Tuple[str, str]:
        """
        Split a path into its parent and its last segment, literally.

        Unlike ``split``, a trailing separator yields an empty leaf, which
        callers use to reject directory-like paths.

        Returns:
            Tuple of (parent path, leaf name)
        """
        parent, _, leaf = path.rpartition('/')
        return (parent or '/', leaf)

    @staticmethod
    def split(path: str) -> Tuple[str, str]:
        """
        Split a normalized path into directory and base name.

        Returns:
            Tuple of (dirname, basename); basename is empty for the root
        """
        components = PathResolver.components(path)
        if not components:
            return ('/', '')
        return ('/' + '/'.join(components[:-1]), components[-1])
