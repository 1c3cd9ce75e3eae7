'''
    Command line: train a cascade, detect with it, evaluate it.
'''

import argparse
import logging
import sys
from typing import Optional, Sequence

from .config import MAX_WINDOW_SIZE, MIN_WINDOW_SIZE, DetectionConfig, TrainingConfig
from .detection import annotated_path, detect_file
from .errors import CascadeError, TrainingAborted
from .evaluate import evaluate_cascade, plot_confusion_matrix
from .model import load, save
from .samples import read_samples
from .training import train_cascade

logger = logging.getLogger(__name__)


def window_size(value: str) -> int:
    size = int(value)
    if not MIN_WINDOW_SIZE <= size <= MAX_WINDOW_SIZE:
        raise argparse.ArgumentTypeError(f'window size must be in [{MIN_WINDOW_SIZE}, {MAX_WINDOW_SIZE}]')
    return size


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='cascade_detector',
                                     description='Boosted Haar cascade training and detection.')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose logging')
    commands = parser.add_subparsers(dest='command', required=True)

    train = commands.add_parser('train', help='Train a cascade from sample files')
    train.add_argument('model', help='Output model file')
    train.add_argument('positives', help='Positive sample file')
    train.add_argument('negatives', help='Negative sample file')
    train.add_argument('--size', type=window_size, default=MIN_WINDOW_SIZE, help='Sample window size')
    train.add_argument('--stages', type=int, default=10, help='Number of cascade stages')
    train.add_argument('--rotate', action='store_true', help='Also try rotated negatives when bootstrapping')
    train.add_argument('--mirror', action='store_true', help='Add mirrored copies of the positives')
    train.add_argument('--negatives-per-stage', type=int, default=0,
                       help='Negative pool size per stage (default: number of positives)')
    train.add_argument('--max-fnr', type=float, default=0.01, help='Maximum false negative rate per stage')
    train.add_argument('--target-fpr', type=float, default=1e-6, help='Overall false positive rate')
    train.add_argument('--max-rounds', type=int, default=200, help='Maximum weak classifiers per stage')
    train.add_argument('--seed', type=int, default=None, help='Random seed for feature subsampling')
    train.add_argument('--keep-probability', type=float, default=1.0,
                       help='Fraction of features tried in each boosting round')
    train.add_argument('--jobs', type=int, default=-1, help='Worker threads for the feature search')

    detect = commands.add_parser('detect', help='Detect objects in an image')
    detect.add_argument('image', help='Image file')
    detect.add_argument('model', help='Model file')
    detect.add_argument('--show', action='store_true', help='Display the detections')
    detect.add_argument('--output', nargs='?', const='', default=None,
                        help='Write the outlined image (default: <image>.detections<ext>)')
    detect.add_argument('--scale-step', type=float, default=1.25, help='Window growth factor per scale')
    detect.add_argument('--slide-step', type=float, default=0.1, help='Slide step as a fraction of the window')
    detect.add_argument('--threshold-scale', type=float, default=1.0,
                        help='Multiplier of every stage threshold')

    evaluate = commands.add_parser('evaluate', help='Evaluate a cascade on held-out samples')
    evaluate.add_argument('model', help='Model file')
    evaluate.add_argument('positives', help='Positive sample file')
    evaluate.add_argument('negatives', help='Negative sample file')
    evaluate.add_argument('--plot', default=None, help='Save the confusion matrix heatmap to this file')
    return parser


def run_train(args) -> int:
    config = TrainingConfig(window_size=args.size, stage_count=args.stages, target_fpr=args.target_fpr,
                            max_fnr=args.max_fnr, negatives_per_stage=args.negatives_per_stage,
                            rotate_negatives=args.rotate, mirror_positives=args.mirror,
                            max_rounds=args.max_rounds, feature_keep_probability=args.keep_probability,
                            seed=args.seed, n_jobs=args.jobs)
    positives = list(read_samples(args.positives, args.size))
    try:
        cascade = train_cascade(positives, read_samples(args.negatives, args.size), config)
    except TrainingAborted as e:
        if e.cascade is not None:
            save(e.cascade, args.model)
            logger.warning('Saved the %d stages trained before the failure', len(e.cascade))
        raise
    save(cascade, args.model)
    sys.stdout.write(f'Trained {len(cascade)} stages, saved to {args.model}\n')
    return 0

def run_detect(args) -> int:
    config = DetectionConfig(scale_step=args.scale_step, slide_step=args.slide_step,
                             threshold_scale=args.threshold_scale)
    output = args.output
    if output == '':
        output = annotated_path(args.image)
    detections = detect_file(args.image, args.model, config, output=output, show=args.show)
    sys.stdout.write(f'{len(detections)} detections\n')
    for d in detections:
        sys.stdout.write(f'{d.x} {d.y} {d.size}\n')
    return 0

def run_evaluate(args) -> int:
    cascade = load(args.model)
    c, s = evaluate_cascade(cascade, read_samples(args.positives, cascade.size),
                            read_samples(args.negatives, cascade.size))
    sys.stdout.write(f'{s}\n')
    if args.plot:
        plot_confusion_matrix(c, args.plot, title=f'{len(cascade)}-stage cascade')
    return 0


COMMANDS = {
    'train': run_train,
    'detect': run_detect,
    'evaluate': run_evaluate,
}

def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # Configure logging
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(levelname)s: %(message)s',
    )

    try:
        return COMMANDS[args.command](args)
    except (CascadeError, OSError, ValueError) as e:
        sys.stderr.write(f'Error: {e}\n')
        return 1


if __name__ == '__main__':
    sys.exit(main())
