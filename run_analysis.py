"""Launcher: loads .env, runs one client analysis and prints the report."""
import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

from config_loader import ConfigError, client_from_record, load_config, read_json
from pipeline import run_analysis
from settings import configure_logging, get_settings
from template_report import generate_template_report

ROOT = Path(__file__).resolve().parent

logger = logging.getLogger("run_analysis")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Calculate, validate and benchmark one client's KPIs.")
    parser.add_argument("--client", required=True, help="Client record JSON (inputs, formTier, industry, state, ...)")
    parser.add_argument("--config", help="Configuration JSON with kpis/rules/benchmarks (overrides KPI_CONFIG_FILE)")
    parser.add_argument("--benchmarks", help="Benchmark CSV (overrides KPI_BENCHMARKS_CSV)")
    parser.add_argument("--json", dest="json_out", help="Also write the full result as JSON to this path")
    parser.add_argument("--log-level", help="Logging level (overrides KPI_LOG_LEVEL)")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings(ROOT)
    configure_logging(args.log_level or settings.log_level)

    if args.config or args.benchmarks:
        settings = replace(
            settings,
            config_file=args.config or settings.config_file,
            benchmarks_csv=args.benchmarks or settings.benchmarks_csv,
        )

    try:
        config = load_config(settings)
        record = read_json(args.client)
        if not isinstance(record, dict):
            raise ConfigError(f"Client file {args.client} must contain a JSON object")
        client = client_from_record(record)
    except ConfigError as e:
        logger.error("%s", e)
        return 2

    result = run_analysis(client, config, settings)
    print(generate_template_report(result, list(config.kpis)))

    if args.json_out:
        with open(args.json_out, "w", encoding="utf-8") as f:
            json.dump(result.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info("Result written to %s", args.json_out)

    return 1 if result.validation.status == "errors" else 0


if __name__ == "__main__":
    sys.exit(main())
