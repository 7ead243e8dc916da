"""
Command-Line Interface for VibeChain
====================================

Usage:
    python -m vibechain train --csv data/dataset.csv [options]
    python -m vibechain analyze --input tracks.json [options]

Train options:
    --csv               Path to the tracks CSV
    --epochs            Epoch budget (default: 10)
    --batch-size        Minibatch size (default: 32)
    --learning-rate     Adam learning rate (default: 0.001)
    --sample-size       Tracks read from the CSV (default: 5000, 0 = all)
    --validation-split  Held-out fraction (default: 0.2)
    --patience          Early-stopping patience in epochs (default: off)
    --session-strategy  chunk or gap (default: chunk)
    --model-path        Where to save the model

Analyze options:
    --input, -i         JSON file with {"tracks": [...], "options": {...}}
    --model-path        Model to load
    --no-insights       Skip insight generation
    --recommendations   Include recommendations
    --output, -o        Output file path (default: stdout)

Examples:
    python -m vibechain train --csv data/dataset.csv --epochs 20
    python -m vibechain analyze -i request.json -o analysis.json
"""

import argparse
import json
import sys
from dataclasses import replace

from loguru import logger

from vibechain.analyzer import ListeningAnalyzer
from vibechain.config import load_config
from vibechain.exceptions import VibeChainError
from vibechain.pipeline import train_from_csv
from vibechain.sessions import SESSION_STRATEGIES


def configure_logging(verbose: bool = False) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="DEBUG" if verbose else "INFO",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser for CLI."""
    config = load_config()

    parser = argparse.ArgumentParser(
        prog='vibechain',
        description='VibeChain - listening history mood prediction and insights',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  VIBECHAIN_MODEL_PATH   Default model location
  VIBECHAIN_DATA_PATH    Default training CSV
  VIBECHAIN_TRAINING_*   Training overrides (e.g. VIBECHAIN_TRAINING_EPOCHS)
        """
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Enable verbose output'
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    # train
    train = subparsers.add_parser('train', help='Train the mood model from a CSV corpus')
    train.add_argument('--csv', type=str, default=config.data_path, help=f'Tracks CSV (default: {config.data_path})')
    train.add_argument('--epochs', type=int, default=config.training.epochs)
    train.add_argument('--batch-size', type=int, default=config.training.batch_size)
    train.add_argument('--learning-rate', type=float, default=config.training.learning_rate)
    train.add_argument(
        '--sample-size',
        type=int,
        default=config.training.sample_size,
        help='Tracks read from the CSV (0 = all)'
    )
    train.add_argument('--validation-split', type=float, default=config.training.validation_split)
    train.add_argument('--patience', type=int, default=config.training.patience)
    train.add_argument(
        '--session-strategy',
        choices=SESSION_STRATEGIES,
        default=config.data.session_strategy
    )
    train.add_argument('--model-path', type=str, default=config.model_path)

    # analyze
    analyze = subparsers.add_parser('analyze', help='Analyze a batch of tracks with a trained model')
    analyze.add_argument('-i', '--input', type=str, required=True, help='Request JSON file')
    analyze.add_argument('--model-path', type=str, default=config.model_path)
    analyze.add_argument('--no-insights', action='store_true', help='Skip insight generation')
    analyze.add_argument('--recommendations', action='store_true', help='Include recommendations')
    analyze.add_argument('-o', '--output', type=str, default=None, help='Output file path (default: stdout)')

    return parser


def run_train(args: argparse.Namespace) -> int:
    config = load_config()
    training = replace(
        config.training,
        epochs=args.epochs,
        batch_size=args.batch_size,
        learning_rate=args.learning_rate,
        sample_size=args.sample_size or None,
        validation_split=args.validation_split,
        patience=args.patience,
    )
    data = replace(config.data, session_strategy=args.session_strategy)

    report = train_from_csv(
        args.csv,
        model_path=args.model_path,
        training_config=training,
        data_config=data,
        model_config=config.model,
    )
    print(json.dumps(report.to_dict(), indent=2))
    return 0


def run_analyze(args: argparse.Namespace) -> int:
    config = load_config()
    with open(args.input, 'r', encoding='utf-8') as f:
        payload = json.load(f)

    # Malformed bodies are left untouched for schema validation to report
    overridable = isinstance(payload, dict) and isinstance(payload.get('options') or {}, dict)
    if overridable and (args.no_insights or args.recommendations):
        options = dict(payload.get('options') or {})
        if args.no_insights:
            options['include_insights'] = False
        if args.recommendations:
            options['include_recommendations'] = True
        payload = {**payload, 'options': options}

    analyzer = ListeningAnalyzer(analysis_config=config.analysis, model_config=config.model)
    analyzer.load_model(args.model_path)
    result = analyzer.analyze_request(payload)
    output = result.to_json(indent=2)

    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(output)
        print(f"Analysis saved to: {args.output}")
    else:
        print(output)
    return 0


def main(argv=None) -> int:
    """Main entry point for CLI."""
    try:
        parser = create_parser()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1
    args = parser.parse_args(argv)
    configure_logging(args.verbose)

    try:
        if args.command == 'train':
            return run_train(args)
        return run_analyze(args)
    except (VibeChainError, FileNotFoundError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == '__main__':
    sys.exit(main())
