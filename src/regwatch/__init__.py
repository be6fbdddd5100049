# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""regwatch - Research scheduling and job orchestration for compliance tracking."""

__version__ = "0.2.0"

__all__ = ["__version__"]
