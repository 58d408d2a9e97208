"""Tag predicate for selecting which ways get slope profiles.

Filter expression grammar:
    expression = term ("," term)*
    term       = key "=" value    (tag present with exactly this value)
               | key              (tag present with any value)

A way matches when it satisfies at least one term. A missing or blank
expression matches every way. Parsing happens once at startup and rejects
malformed terms before any extract data is read.

Example:
    tag_filter = TagFilter.parse("highway=primary,highway=secondary,cycleway")
    tag_filter.matches({"highway": "primary"})  # True
    tag_filter.matches({"cycleway": "lane"})  # True
    tag_filter.matches({"highway": "residential"})  # False
"""

from dataclasses import dataclass
from typing import Mapping, Optional

from wayslope.core.errors import FilterParseError

TERM_SEPARATOR = ","
KEY_VALUE_SEPARATOR = "="


@dataclass(frozen=True)
class FilterTerm:
    """One alternative of the filter.

    Attributes:
        key: Tag key that must be present
        value: Required value, or None to accept any value
    """

    key: str
    value: Optional[str] = None

    def matches(self, tags: Mapping[str, str]) -> bool:
        if self.value is None:
            return self.key in tags
        return tags.get(self.key) == self.value

    def __str__(self) -> str:
        return self.key if self.value is None else f"{self.key}{KEY_VALUE_SEPARATOR}{self.value}"


@dataclass(frozen=True)
class TagFilter:
    """Disjunction of FilterTerms; no terms means match everything."""

    terms: tuple[FilterTerm, ...] = ()

    @property
    def is_match_all(self) -> bool:
        return not self.terms

    @classmethod
    def parse(cls, expression: Optional[str]) -> "TagFilter":
        """Parse a filter expression.

        Args:
            expression: Comma separated terms, or None / blank for match-all

        Returns:
            The parsed TagFilter.

        Raises:
            FilterParseError: On an empty term, empty key, empty value or a
                term with more than one "=".
        """
        if expression is None or not expression.strip():
            return cls()

        terms: list[FilterTerm] = []
        for raw_term in expression.split(TERM_SEPARATOR):
            term = raw_term.strip()
            if not term:
                raise FilterParseError("empty term", expression=expression, term=raw_term)

            parts = term.split(KEY_VALUE_SEPARATOR)
            if len(parts) > 2:
                raise FilterParseError("more than one '=' in term", expression=expression, term=term)

            key = parts[0].strip()
            if not key:
                raise FilterParseError("empty key", expression=expression, term=term)

            if len(parts) == 1:
                terms.append(FilterTerm(key=key))
                continue

            value = parts[1].strip()
            if not value:
                raise FilterParseError("empty value", expression=expression, term=term)
            terms.append(FilterTerm(key=key, value=value))

        return cls(terms=tuple(terms))

    def matches(self, tags: Mapping[str, str]) -> bool:
        """True if the tag set satisfies at least one term (always True for match-all)."""
        if not self.terms:
            return True
        return any(term.matches(tags) for term in self.terms)

    def __str__(self) -> str:
        return TERM_SEPARATOR.join(str(t) for t in self.terms) if self.terms else "<all>"
