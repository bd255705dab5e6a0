from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..config.settings import settings
from ..utils.logger import get_logger

log = get_logger("service.validation")


@dataclass
class ValidationResult:
    success: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": self.success, "errors": self.errors, "warnings": self.warnings}


def _decode(content: bytes) -> str:
    for encoding in ("utf-8-sig", "latin1"):
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    return content.decode("utf-8", errors="replace")


def _header_columns(header_line: str) -> List[str]:
    return [c.strip().strip('"').strip().lower() for c in header_line.split(",")]


def _check_file(
    label: str,
    filename: Optional[str],
    content: Optional[bytes],
    max_bytes: int,
    required_columns: List[str],
    errors: List[str],
    warnings: List[str],
) -> None:
    if not filename or content is None:
        errors.append(f"{label} file is required")
        return

    if Path(filename).suffix.lower() != ".csv":
        errors.append(f"{label} file must be a CSV file")
    if len(content) == 0:
        errors.append(f"{label} file is empty")
        return
    if len(content) > max_bytes:
        errors.append(f"{label} file is too large (max {max_bytes // (1024 * 1024)}MB)")
        return

    lines = [line for line in _decode(content).splitlines() if line.strip()]
    if len(lines) < 2:
        errors.append(f"{label} file must contain at least a header and one data row")
    if not lines:
        return
    if "," not in lines[0]:
        errors.append(f"{label} file does not appear to be a valid CSV format")
        return

    headers = _header_columns(lines[0])
    missing = [c for c in required_columns if c not in headers]
    if missing:
        missing_str = ", ".join(f'"{c}"' for c in missing)
        errors.append(f"{label} file is missing required columns: {missing_str}")

    duplicates = sorted({h for h in headers if headers.count(h) > 1})
    if duplicates:
        warnings.append(f"{label} file has duplicate columns: {', '.join(duplicates)}")


def validate_uploads(
    dataset_name: Optional[str],
    dataset_bytes: Optional[bytes],
    patterns_name: Optional[str],
    patterns_bytes: Optional[bytes],
    config: Dict[str, Any],
) -> ValidationResult:
    """Structural pre-check of a dataset/pattern file pair before any analysis runs."""
    errors: List[str] = []
    warnings: List[str] = []

    dataset_columns = [
        config["location_column"],
        config["name_column"],
        config["parent_column"],
    ]
    _check_file("Dataset", dataset_name, dataset_bytes, settings.MAX_DATASET_BYTES,
                dataset_columns, errors, warnings)
    _check_file("Pattern", patterns_name, patterns_bytes, settings.MAX_PATTERN_BYTES,
                list(config["pattern_columns"]), errors, warnings)

    result = ValidationResult(success=not errors, errors=errors, warnings=warnings)
    if errors:
        log.info("Validation failed for dataset=%s patterns=%s: %s", dataset_name, patterns_name, errors)
    return result
