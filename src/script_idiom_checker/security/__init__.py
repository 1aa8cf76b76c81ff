"""Secure file handling for reading scripts and writing fixes atomically."""

from script_idiom_checker.security.secure_file_handler import SecureFileHandler

__all__ = ["SecureFileHandler"]
