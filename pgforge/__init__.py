"""pgforge - database artifact generator for PostgREST projects."""

__version__ = "0.1.0"
