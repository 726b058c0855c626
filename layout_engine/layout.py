#!/usr/bin/env python3
"""
Layout representation and validation.

A layout is a bijection between a set of characters and the key positions
of a geometry. Its canonical text encoding lists one character per key
position in canonical position order, with no delimiter:

    "qwertyuiopasdfghjkl;zxcvbnm,./"  -> q on position 0, w on 1, ...
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Sequence, Tuple

from layout_engine.errors import ParseError


class Layout:
    """
    Immutable assignment of characters to key positions.

    Both lookups (position -> character, character -> position) are O(1).
    Equality and hashing consider the assignment only, not the name.
    """

    __slots__ = ('_chars', '_positions', 'name')

    def __init__(self, chars: Sequence[str], name: Optional[str] = None):
        chars = tuple(chars)
        positions = {char: i for i, char in enumerate(chars)}
        if len(positions) != len(chars):
            duplicates = sorted({c for c in chars if chars.count(c) > 1})
            raise ParseError(f"Duplicate characters in layout: {''.join(duplicates)}")
        for char in chars:
            if len(char) != 1:
                raise ParseError(f"Layout keys must hold single characters, got {char!r}")
        self._chars: Tuple[str, ...] = chars
        self._positions: Dict[str, int] = positions
        self.name = name

    @classmethod
    def decode(cls,
               text: str,
               size: int,
               alphabet: Optional[Iterable[str]] = None,
               name: Optional[str] = None) -> 'Layout':
        """
        Parse the canonical text encoding of a layout.

        Args:
            text: One character per key position, in canonical order
            size: Number of key positions the layout must fill
            alphabet: Characters allowed on the layout (None = any)
            name: Optional layout name

        Returns:
            Decoded Layout

        Raises:
            ParseError: If the length differs from size, a character repeats,
                or a character is outside the alphabet
        """
        if len(text) != size:
            raise ParseError(
                f"Layout must have exactly {size} characters, got {len(text)}: {text!r}"
            )

        seen = set()
        duplicates = []
        for char in text:
            if char in seen and char not in duplicates:
                duplicates.append(char)
            seen.add(char)
        if duplicates:
            raise ParseError(f"Duplicate characters in layout: {''.join(duplicates)}")

        if alphabet is not None:
            allowed = alphabet if isinstance(alphabet, (set, frozenset)) else set(alphabet)
            invalid = [char for char in text if char not in allowed]
            if invalid:
                raise ParseError(f"Characters not in the language alphabet: {''.join(invalid)}")

        return cls(text, name=name)

    def encode(self) -> str:
        """Canonical text encoding (left inverse of decode)."""
        return ''.join(self._chars)

    def alphabet(self) -> FrozenSet[str]:
        """Set of characters placed on the layout."""
        return frozenset(self._chars)

    def char_at(self, position: int) -> str:
        """Character occupying a key position."""
        return self._chars[position]

    def position_of(self, char: str) -> Optional[int]:
        """Key position holding a character, or None if the character is not on the layout."""
        return self._positions.get(char)

    def swap(self, i: int, j: int) -> 'Layout':
        """New layout with the characters on positions i and j exchanged."""
        chars = list(self._chars)
        chars[i], chars[j] = chars[j], chars[i]
        return Layout(chars)

    def with_name(self, name: Optional[str]) -> 'Layout':
        """Same assignment under a different name."""
        return Layout(self._chars, name=name)

    @property
    def chars(self) -> Tuple[str, ...]:
        return self._chars

    def __len__(self) -> int:
        return len(self._chars)

    def __iter__(self):
        return iter(self._chars)

    def __contains__(self, char: str) -> bool:
        return char in self._positions

    def __eq__(self, other) -> bool:
        if not isinstance(other, Layout):
            return NotImplemented
        return self._chars == other._chars

    def __hash__(self) -> int:
        return hash(self._chars)

    def __str__(self) -> str:
        return self.encode()

    def __repr__(self) -> str:
        if self.name:
            return f"Layout({self.encode()!r}, name={self.name!r})"
        return f"Layout({self.encode()!r})"


def layout_differences(layout1: Layout, layout2: Layout) -> List[Tuple[int, str, str]]:
    """
    Compare two layouts position by position.

    Args:
        layout1: First layout
        layout2: Second layout (same number of positions)

    Returns:
        List of (position, char in layout1, char in layout2) where they differ

    Raises:
        ValueError: If the layouts have different sizes
    """
    if len(layout1) != len(layout2):
        raise ValueError(f"Layouts have different sizes: {len(layout1)} != {len(layout2)}")

    return [(i, a, b) for i, (a, b) in enumerate(zip(layout1, layout2)) if a != b]
