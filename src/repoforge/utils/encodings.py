"""
Encoding detection and handling utilities.

This module decodes raw file bytes into text with fallback encodings and
provides the printable-byte heuristic used to tell text from binary, both
when a local tree is discovered and when content is loaded.
"""

import logging
from typing import List, Optional, Tuple

# Common encodings to try, ordered by likelihood
DEFAULT_ENCODINGS = [
    'utf-8',
    'utf-8-sig',  # UTF-8 with BOM
]

# UTF-32 marks first: the UTF-16 LE mark is a prefix of the UTF-32 LE one
BYTE_ORDER_MARKS = [
    (b'\xff\xfe\x00\x00', 'utf-32-le'),
    (b'\x00\x00\xfe\xff', 'utf-32-be'),
    (b'\xef\xbb\xbf', 'utf-8-sig'),
    (b'\xff\xfe', 'utf-16-le'),
    (b'\xfe\xff', 'utf-16-be'),
]

# Bytes that count as printable besides 0x20-0x7e: tab, LF, CR, FF, ESC
_TEXT_CONTROL_BYTES = {8, 9, 10, 12, 13, 27}

# Share of non-printable bytes above which a sample is treated as binary
BINARY_RATIO_THRESHOLD = 0.3

# Set up module logger
logger = logging.getLogger(__name__)


class EncodingDetector:
    """Handles encoding detection and text decoding."""

    def __init__(self, fallback_encodings: Optional[List[str]] = None, sample_size: int = 8192):
        """
        Initialize the encoding detector.

        Args:
            fallback_encodings: List of encodings to try. If None, uses defaults.
            sample_size: Number of leading bytes inspected by the binary check.
        """
        self.encodings = fallback_encodings or DEFAULT_ENCODINGS
        self.sample_size = sample_size

    def decode_bytes(self, content: bytes, file_path: Optional[str] = None) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        """
        Attempt to decode bytes to string using multiple encodings.

        Args:
            content: Raw bytes to decode.
            file_path: Optional file path for better error messages.

        Returns:
            Tuple of (decoded_text, encoding_used, error_message).
            If successful: (text, encoding, None)
            If failed: (None, None, error_message)
        """
        # Check for BOM first
        has_bom, bom_encoding = self.has_bom(content)
        if has_bom:
            try:
                decoded = content.decode(bom_encoding).lstrip("\ufeff")
                logger.debug(f"Decoded {file_path} using BOM-detected {bom_encoding}")
                return decoded, bom_encoding, None
            except UnicodeDecodeError as e:
                logger.debug(f"BOM decode failed for {file_path}: {e}")

        last_error = None
        for encoding in self.encodings:
            try:
                decoded = content.decode(encoding)
                return decoded, encoding, None
            except UnicodeDecodeError as e:
                last_error = e
                continue
            except LookupError as e:
                logger.warning(f"Unknown encoding {encoding} configured for {file_path}")
                last_error = e
                continue

        error_msg = f"Unable to decode file with available encodings ({', '.join(self.encodings[:3])})"
        if last_error is not None and hasattr(last_error, 'start'):
            error_msg += f" - failed at byte {last_error.start}"

        logger.info(f"Encoding detection failed for {file_path}: tried {len(self.encodings)} encodings")
        return None, None, error_msg

    def has_bom(self, content: bytes) -> Tuple[bool, Optional[str]]:
        """
        Check if content starts with a Byte Order Mark (BOM).

        Returns:
            Tuple of (has_bom, encoding_name).
        """
        for bom, encoding in BYTE_ORDER_MARKS:
            if content.startswith(bom):
                return True, encoding

        return False, None

    def is_likely_binary(self, content: bytes) -> bool:
        """
        Check if content is likely binary.

        A sample containing null bytes is binary. Otherwise a sample that
        decodes as UTF-8 is text, and anything else is judged by its share
        of non-printable bytes.
        """
        sample = content[:self.sample_size]
        if not sample:
            return False

        if self.has_bom(sample)[0] and not sample.startswith(b'\xef\xbb\xbf'):
            # UTF-16/32 text legitimately contains null bytes
            return False

        if b'\x00' in sample:
            return True

        try:
            sample.decode('utf-8')
            return False
        except UnicodeDecodeError as e:
            # A multi-byte character cut off by the sample boundary is still text
            if e.start >= len(sample) - 3 and e.reason == 'unexpected end of data':
                return False

        return self.non_printable_ratio(sample) > BINARY_RATIO_THRESHOLD

    @staticmethod
    def non_printable_ratio(sample: bytes) -> float:
        """Share of bytes that are neither printable ASCII, common whitespace nor high-bit."""
        if not sample:
            return 0.0
        non_printable = 0
        for byte in sample:
            if byte < 32 and byte not in _TEXT_CONTROL_BYTES:
                non_printable += 1
            elif byte == 127:
                non_printable += 1
        return non_printable / len(sample)
