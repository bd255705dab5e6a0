import argparse
import json
from pathlib import Path
import sys

# Add project root to sys.path to allow for package imports without installing
project_root = Path(__file__).resolve().parents[1]
sys.path.append(str(project_root))

from pattern_inspector.services.analysis_service import analyze_files, get_runtime_config
from pattern_inspector.services.validation_service import validate_uploads
from pattern_inspector.utils.logger import get_logger, setup_logging

log = get_logger("script.run_analysis")


def run_analysis(dataset_file: Path, patterns_file: Path, output_file: Path, strict: bool = False) -> int:
    """
    Validates and analyzes a dataset/pattern CSV pair outside the API
    and writes the full result as JSON.
    """
    for path in (dataset_file, patterns_file):
        if not path.exists():
            log.error(f"Input file not found: {path}")
            return 1

    config = get_runtime_config()
    if strict:
        config["strict_patterns"] = True

    dataset_bytes = dataset_file.read_bytes()
    patterns_bytes = patterns_file.read_bytes()

    validation = validate_uploads(dataset_file.name, dataset_bytes, patterns_file.name, patterns_bytes, config)
    for warning in validation.warnings:
        log.warning(warning)
    if not validation.success:
        for error in validation.errors:
            log.error(error)
        return 1

    try:
        results = analyze_files(
            dataset_bytes,
            dataset_file.name,
            patterns_bytes,
            patterns_file.name,
            config,
            progress=lambda value: log.info(f"Progress: {value:.0%}"),
        )
    except ValueError as e:
        log.error(f"Analysis failed: {e}")
        return 1

    for failure in results["patternErrors"]:
        log.warning(f"Pattern row {failure['index']} skipped: {failure['error']}")

    output_file.parent.mkdir(parents=True, exist_ok=True)
    with output_file.open("w", encoding="utf-8") as f:
        json.dump(results, f, indent=2, ensure_ascii=False)
    log.info(f"Analyzed {len(results['patterns'])} patterns over {len(results['locations'])} locations.")
    log.info(f"Output file: {output_file}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Run the pattern analysis on a dataset and pattern CSV.")
    parser.add_argument("dataset", type=Path, help="Dataset CSV (one row per location)")
    parser.add_argument("patterns", type=Path, help="Mined pattern CSV")
    parser.add_argument("-o", "--output", type=Path, default=Path("analysis_result.json"))
    parser.add_argument("--strict", action="store_true", help="Fail on the first malformed pattern")
    args = parser.parse_args(argv)

    setup_logging()
    return run_analysis(args.dataset, args.patterns, args.output, strict=args.strict)


if __name__ == "__main__":
    sys.exit(main())
