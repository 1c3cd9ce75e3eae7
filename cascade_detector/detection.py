'''
    Multi-scale sliding-window detection.

    The integral images of the picture are built once. Instead of resizing
    the picture, the cascade itself is scaled up after every pass, so the
    same integral images serve every window size.
'''

import logging
import os
from typing import List, NamedTuple, Optional, Sequence

import numpy as np
from PIL import Image, ImageDraw

from .cascade import Cascade
from .config import DetectionConfig
from .images import open_grayscale, to_integral, window_statistics
from .model import load

logger = logging.getLogger(__name__)

# Detection
class Detection(NamedTuple):
    x: int
    y: int
    size: int


def window_offsets(width: int, height: int, size: int, slide: int):
    '''Top-left corners of every size x size window, x-major then y.'''
    xs, ys = np.meshgrid(np.arange(0, width - size + 1, slide),
                         np.arange(0, height - size + 1, slide), indexing='ij')
    return xs.ravel(), ys.ravel()

def detect(cascade: Cascade, image: np.ndarray, config: Optional[DetectionConfig] = None) -> List[Detection]:
    '''
        Every window of a 2D grayscale array that all cascade stages accept.
        Windows start at the cascade size and grow by config.scale_step while
        they fit in the image. Overlapping detections are all reported.
    '''
    config = config or DetectionConfig()
    config.validate()
    image = np.asarray(image, dtype=np.float64)
    if image.ndim != 2:
        raise ValueError(f'Expected a 2D grayscale image, got shape {image.shape}')
    if int(cascade.size * config.scale_step) <= cascade.size:
        raise ValueError(f'Scale step {config.scale_step} does not grow a {cascade.size} pixel window')

    height, width = image.shape
    integral = to_integral(image)
    squared_integral = to_integral(image, squared=True)

    base = cascade
    if config.threshold_scale != 1.:
        base = base.scale_thresholds(config.threshold_scale)

    detections: List[Detection] = []
    scaled = base
    while scaled.size <= min(width, height):
        size = scaled.size
        slide = max(1, int(size * config.slide_step))
        xs, ys = window_offsets(width, height, size, slide)
        means, stds = window_statistics(integral, squared_integral, xs, ys, size)
        accepted = scaled.classify_windows(integral, xs, ys, means, stds)
        found = [Detection(int(x), int(y), size) for x, y in zip(xs[accepted], ys[accepted])]
        logger.debug('Window %d: %d windows, %d detections', size, xs.size, len(found))
        detections.extend(found)

        # Grow the cascade, not the image; truncation carries over between passes
        scaled = scaled.scale(config.scale_step)
    logger.info('%d detections in a %dx%d image', len(detections), width, height)
    return detections


def draw_detections(image: Image.Image, detections: Sequence[Detection]) -> Image.Image:
    '''RGB copy of the image with every detection outlined in red.'''
    annotated = image.convert('RGB')
    stroke = max(1, max(annotated.size) // 100)
    draw = ImageDraw.Draw(annotated)
    for d in detections:
        draw.rectangle([d.x, d.y, d.x + d.size - 1, d.y + d.size - 1], outline=(255, 0, 0), width=stroke)
    return annotated

def show_detections(image: Image.Image, detections: Sequence[Detection]) -> None:
    import matplotlib.pyplot as plt
    import matplotlib.patches as patches

    fig, ax = plt.subplots(1)
    # Display the image
    ax.imshow(image.convert('RGB'))
    for d in detections:
        ax.add_patch(patches.Rectangle((d.x, d.y), d.size, d.size, fill=False, edgecolor='red'))
    plt.show()

def annotated_path(image_path: str) -> str:
    stem, ext = os.path.splitext(image_path)
    return f'{stem}.detections{ext}'

def detect_file(image_path: str, model_path: str, config: Optional[DetectionConfig] = None,
                output: Optional[str] = None, show: bool = False) -> List[Detection]:
    '''
        Detect in an image file with a saved model. The outlined copy is
        written to `output` when given, and displayed with `show`.
    '''
    config = config or DetectionConfig()
    cascade = load(model_path, config.min_window_size, config.max_window_size)
    detections = detect(cascade, open_grayscale(image_path), config)
    if output is not None or show:
        with Image.open(image_path) as img:
            annotated = draw_detections(img, detections)
        if output is not None:
            annotated.save(output)
            logger.info('Saved annotated image to %s', output)
        if show:
            show_detections(annotated, detections)
    return detections
