"""
Artifact path derivation and reference validation.

Paths are relative to the store's bucket: ``receipts/<name>.<ext>`` and
``cuts/<name>.<ext>``.  A stored reference is trusted only when it starts
with the configured ``<scheme>://<bucket>/`` prefix and the remainder holds
no traversal segment.
"""

from __future__ import annotations

from billing_kernel.exceptions import (
    InvalidArtifactReferenceError,
    UnsafeArtifactPathError,
)

RECEIPTS_DIR = "receipts"
CUTS_DIR = "cuts"

MAX_NAME_LENGTH = 255


def ensure_safe_name(name: str) -> str:
    """Reject names that could escape their directory."""
    if (
        not name
        or len(name) > MAX_NAME_LENGTH
        or ".." in name
        or "/" in name
        or "\\" in name
        or "\x00" in name
    ):
        raise UnsafeArtifactPathError(name)
    return name


def ensure_safe_path(path: str) -> str:
    """Reject relative paths that are absolute or contain ``..`` segments."""
    if not path or path.startswith("/") or "\\" in path or "\x00" in path:
        raise UnsafeArtifactPathError(path)
    segments = path.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        raise UnsafeArtifactPathError(path)
    return path


def receipt_path(receipt_id: object, extension: str) -> str:
    return f"{RECEIPTS_DIR}/{ensure_safe_name(str(receipt_id))}.{extension}"


def cash_cut_path(cash_cut_id: str, extension: str) -> str:
    return f"{CUTS_DIR}/{ensure_safe_name(cash_cut_id)}.{extension}"


def strip_reference(reference: str, prefix: str) -> str:
    """
    Turn a trusted reference back into a bucket-relative path.

    Raises:
        InvalidArtifactReferenceError: reference lacks the expected prefix.
        UnsafeArtifactPathError: the remainder is absolute or has ``..``.
    """
    if not reference.startswith(prefix):
        raise InvalidArtifactReferenceError(reference, prefix)
    return ensure_safe_path(reference[len(prefix):])


def resolve_receipt_path(
    reference: str | None,
    receipt_id: object,
    prefix: str,
    extension: str,
    *,
    strict: bool = True,
) -> str:
    """
    Path to overwrite when re-rendering a receipt.

    The existing reference wins when present and trusted.  Without a
    reference the fallback ``receipts/<receipt-id>.<ext>`` is used.  With an
    untrusted reference, ``strict`` raises; otherwise the fallback is used.
    """
    fallback = receipt_path(receipt_id, extension)
    if not reference:
        return fallback
    if strict:
        return strip_reference(reference, prefix)
    try:
        return strip_reference(reference, prefix)
    except (InvalidArtifactReferenceError, UnsafeArtifactPathError):
        return fallback
