"""CLI orchestrator for the response endpoint pipeline."""

import logging
from pathlib import Path

import click

from oncoendpoints.utils.config import StudyConfig

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
OUTPUT_DIR = BASE_DIR / "outputs"


def _load_data(config: StudyConfig) -> dict:
    """Load data from the configured source."""
    if config.source == "synthetic":
        from oncoendpoints.ingest.synthetic import SyntheticSource
        source = SyntheticSource(config, output_dir=DATA_DIR / "raw" / config.study_id)
    elif config.source == "table":
        from oncoendpoints.ingest.table_loader import TableSource
        source = TableSource(config)
    else:
        raise ValueError(f"Unknown source: {config.source}")
    return source.load()


def _load_dataset(cfg: StudyConfig):
    from oncoendpoints.harmonize.harmonizer import ResponseDataset
    return ResponseDataset.from_parquet(DATA_DIR / "processed" / cfg.study_id, cfg)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log per-subject detail")
def cli(verbose: bool):
    """Oncology response endpoints - TTR, DOR, TTP and estimand datasets."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.option("--config", required=True, help="Path to study YAML config")
def data(config: str):
    """Load response tables, run QA checks, and save the harmonized dataset."""
    cfg = StudyConfig.load(config)
    click.echo(f"Loading data for study: {cfg.study_name}")

    raw = _load_data(cfg)

    from oncoendpoints.harmonize.harmonizer import Harmonizer
    harmonizer = Harmonizer(cfg)
    dataset = harmonizer.harmonize(raw)

    from oncoendpoints.qa.checks import run_all_checks
    from oncoendpoints.qa.report import generate_qa_report
    results = run_all_checks(dataset, cfg)
    report_path = OUTPUT_DIR / "reports" / "qa_report.md"
    generate_qa_report(results, report_path)
    n_failed = sum(1 for r in results if not r.passed)
    click.echo(f"QA report saved to {report_path} ({n_failed} checks failed)")

    out = DATA_DIR / "processed" / cfg.study_id
    dataset.to_parquet(out)
    click.echo(f"Harmonized data saved to {out}")
    dataset.summary()


@cli.command()
@click.option("--config", required=True, help="Path to study YAML config")
@click.option("--time-unit", type=click.Choice(["cycle", "days", "months"]),
              default=None, help="Override derivation.time_unit")
def derive(config: str, time_unit: str | None):
    """Derive per-patient endpoints and write the endpoint table."""
    cfg = StudyConfig.load(config)
    dataset = _load_dataset(cfg)

    from oncoendpoints.endpoints.derive import EndpointDeriver
    result = EndpointDeriver(cfg).derive(dataset)
    table = result.to_frame(time_unit or cfg.time_unit)

    n = len(table)
    click.echo(f"Endpoints derived: {n} subjects, {len(result.excluded)} excluded")
    click.echo(f"  Objective response: {table['or'].sum()} / {n} ({table['or'].mean():.1%})")
    click.echo(f"  Progressed: {table['any_pd'].sum()}, new therapy: {table['any_anp'].sum()}")
    click.echo(f"  BOR: {table['bor'].value_counts().to_dict()}")

    out = DATA_DIR / "outputs" / cfg.study_id
    out.mkdir(parents=True, exist_ok=True)
    table.to_parquet(out / "endpoints.parquet", index=False)
    table.to_csv(out / "endpoints.csv", index=False)
    # Cycle-unit copy feeds the estimand selector
    result.to_frame("cycle").to_parquet(out / "endpoints_cycle.parquet", index=False)
    click.echo(f"Endpoint table saved to {out}")

    if result.excluded:
        from oncoendpoints.qa.checks import run_all_checks
        from oncoendpoints.qa.report import generate_qa_report
        report_path = OUTPUT_DIR / "reports" / "qa_report.md"
        generate_qa_report(run_all_checks(dataset, cfg), report_path, result.excluded)
        click.echo(f"QA report updated with exclusions: {report_path}")


@cli.command()
@click.option("--config", required=True, help="Path to study YAML config")
@click.option("--label", "labels", multiple=True,
              help="Estimand label (repeatable); defaults to the config's list")
@click.option("--time-unit", type=click.Choice(["cycle", "days", "months"]), default=None)
def estimand(config: str, labels: tuple[str, ...], time_unit: str | None):
    """Write analysis datasets (subject_id, time, event) per estimand."""
    cfg = StudyConfig.load(config)
    dataset = _load_dataset(cfg)

    import pandas as pd
    from oncoendpoints.estimands.strategies import normalize_label, select_analysis_data, select_estimand

    out = DATA_DIR / "outputs" / cfg.study_id
    endpoints = pd.read_parquet(out / "endpoints_cycle.parquet")
    group = None
    if "treatment_arm" in dataset.subjects.columns:
        group = dataset.subjects.set_index("subject_id")["treatment_arm"]

    for label in labels or cfg.estimands:
        analysis = select_analysis_data(
            endpoints, label, dataset.schedule, time_unit or cfg.time_unit, group
        )
        path = out / f"estimand_{normalize_label(label)}.csv"
        analysis.to_csv(path, index=False)
        click.echo(f"{label} ({select_estimand(label).description}): {len(analysis)} subjects, "
                   f"events {analysis['event'].value_counts().sort_index().to_dict()} -> {path}")


if __name__ == "__main__":
    cli()
