"""Verification checks for built images."""

from firebird_images.checks.suite import CHECKS, Check, CheckFailure, select_checks

__all__ = ["CHECKS", "Check", "CheckFailure", "select_checks"]
