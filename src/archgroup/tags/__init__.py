"""Tag grammar: raw tag strings to grouping targets."""

from archgroup.tags.parser import TagParseOutcome, TagParser

__all__ = ["TagParseOutcome", "TagParser"]
