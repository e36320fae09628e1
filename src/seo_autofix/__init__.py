"""SEO AutoFix - batch scan orchestration for the broken link and image SEO screens."""

__version__ = "0.1.0"
