#!/usr/bin/env python
"""
Staged Analysis Pipeline - Main Entry Point
Builds the stage list for the requested pipeline and runs it under the PipelineDriver.
"""
import sys
import logging
import argparse
import traceback
from pathlib import Path

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

# Core Infrastructure
from modules.config_manager import ConfigurationManager
from modules.logging_config import LoggingConfigurator
from modules.pipeline_driver import PipelineDriver
from modules.stages import (
    SlimmerStage,
    PreselectionStage,
    BDTTrainStage,
    BDTEvalStage,
    PlotStage,
)
from utils.exceptions import PipelineException

# Fixed stage order per entry point.
PIPELINES = {
    'all': [SlimmerStage, PreselectionStage, BDTTrainStage, BDTEvalStage],
    'bdttrain': [BDTTrainStage],
    'bdteval': [BDTEvalStage],
    'plot': [PlotStage],
}


def parse_arguments(argv=None):
    """
    Parse command-line arguments.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    parser = argparse.ArgumentParser(
        description="Staged Analysis Pipeline - selection, BDT training, scoring and plotting",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )

    parser.add_argument(
        "--config",
        type=str,
        required=True,
        help="Path to the configuration JSON file"
    )

    parser.add_argument(
        "--schema",
        type=str,
        default="config/schema.json",
        help="Path to the configuration JSON schema"
    )

    parser.add_argument(
        "--pipeline",
        choices=sorted(PIPELINES),
        default="all",
        help="Which stage sequence to run"
    )

    parser.add_argument(
        "--run-id",
        type=str,
        default=None,
        help="Optional run token (defaults to timestamp plus random suffix)"
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging"
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Validate configuration and build the stages without running them"
    )

    return parser.parse_args(argv)


def build_stages(pipeline: str, config: dict, logger: logging.Logger) -> list:
    """Instantiate the stages for ``pipeline``; configuration errors surface here."""
    return [stage_cls(config, logger.getChild(stage_cls.__name__)) for stage_cls in PIPELINES[pipeline]]


def main(argv=None):
    """
    Main pipeline orchestration function.

    Returns:
        int: Exit code (0 success, 1 pipeline error, 130 interrupted)
    """
    logger = None
    driver = None

    try:
        args = parse_arguments(argv)

        print("\n" + "=" * 80)
        print(f"    STAGED ANALYSIS PIPELINE ({args.pipeline.upper()})")
        print("=" * 80 + "\n")

        # 1. Load and validate configuration
        config_manager = ConfigurationManager(config_path=args.config, schema_path=args.schema)
        config = config_manager.load_and_validate()

        if args.verbose:
            config.setdefault('logging', {})['level'] = 'DEBUG'

        # 2. Setup logging
        logging_configurator = LoggingConfigurator(config)
        logging_configurator.setup()
        logger = logging_configurator.get_logger('pipeline')

        logger.info(f"Configuration loaded from: {args.config}")

        # 3. Run token and artifacts
        config_manager.run_id = args.run_id
        run_id = config_manager.generate_run_id()
        run_dir = Path(config.setdefault('outputs', {}).get('base_results_dir', 'results')).absolute()
        config['outputs']['base_results_dir'] = str(run_dir)
        config_manager.save_artifacts(str(run_dir))

        logger.info(f"Run ID: {run_id}")
        logger.info(f"Output Directory: {run_dir}")

        # 4. Build stages
        stages = build_stages(args.pipeline, config, logger)
        driver = PipelineDriver(stages, logger=logging_configurator.get_logger('pipeline_driver'), run_id=run_id)
        logger.info(f"Pipeline '{args.pipeline}': {', '.join(s.name for s in driver.stages)}")

        if args.dry_run:
            logger.info("Dry run mode: validation complete. Exiting without running pipeline.")
            print("\n[SUCCESS] Configuration validated successfully.")
            return 0

        # 5. Run
        reports = driver.run()

        logger.info("\n" + "-" * 60)
        logger.info("PIPELINE COMPLETED SUCCESSFULLY")
        for report in reports:
            logger.info(
                f"  {report.name:<14} entries={report.entries:<8} "
                f"wall={report.wall_seconds:.2f}s cpu={report.cpu_seconds:.2f}s"
            )
        logger.info("-" * 60 + "\n")

        print(f"\n[SUCCESS] Pipeline completed. Results saved to: {run_dir}")
        return 0

    except PipelineException as e:
        stage = f" in stage '{driver.failed_stage}'" if driver is not None and driver.failed_stage else ""
        msg = f"Pipeline Error{stage}: {str(e)}"
        print(f"\n[ERROR] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1

    except KeyboardInterrupt:
        print("\n[INTERRUPTED] Pipeline interrupted by user.")
        if logger:
            logger.warning("Pipeline interrupted by user (Ctrl+C)")
        return 130

    except Exception as e:
        stage = f" in stage '{driver.failed_stage}'" if driver is not None and driver.failed_stage else ""
        msg = f"Unexpected Error{stage}: {str(e)}"
        print(f"\n[CRITICAL] {msg}")
        if logger:
            logger.critical(msg, exc_info=True)
        else:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
