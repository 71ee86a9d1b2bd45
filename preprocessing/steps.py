"""
Enhancement step classes with a common interface.

Each step implements the PreprocessStep interface. Steps are pure: they take
an input and return a new output without mutating the original array.

Usage:
    from preprocessing.steps import ContrastStep, ResizeStep, Pipeline

    pipeline = Pipeline(steps=[
        ResizeStep(max_dimension=1920),
        ContrastStep(factor=1.2),
    ])
    result = pipeline.run(image)
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

import cv2
import numpy as np

from .normalization import (
    adjust_brightness,
    adjust_contrast,
    invert,
    normalize_range,
    resize_to_max_dimension,
    sharpen,
    to_grayscale,
    upscale_to_min_dimension,
)


class PreprocessStep(ABC):
    """Base class for enhancement steps.

    Steps should be pure functions: they take an input image and return a new
    output without mutating the original.

    Steps can optionally produce metadata (like scale factors) that needs to
    be preserved for later coordinate mapping.
    """

    @abstractmethod
    def apply(self, img: np.ndarray) -> np.ndarray:
        """Apply this step to an image and return a new array."""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name for logging and debugging."""
        pass

    def get_metadata(self) -> dict[str, Any]:
        """Return any metadata produced by the last apply() call."""
        return {}


@dataclass(frozen=True)
class GrayscaleStep(PreprocessStep):
    """Convert image to grayscale."""

    def apply(self, img: np.ndarray) -> np.ndarray:
        return to_grayscale(img)

    @property
    def name(self) -> str:
        return "grayscale"


@dataclass
class ResizeStep(PreprocessStep):
    """Shrink image so its longer side fits max_dimension, never enlarging.

    Tracks the scale factor as metadata so detector coordinates can be mapped
    back to the original image.
    """

    max_dimension: int
    interpolation: int = cv2.INTER_AREA
    _scale_factor: float = field(default=1.0, init=False, repr=False)

    def apply(self, img: np.ndarray) -> np.ndarray:
        resized, scale_factor = resize_to_max_dimension(
            img, self.max_dimension, self.interpolation
        )
        self._scale_factor = scale_factor
        return resized

    @property
    def name(self) -> str:
        return f"resize({self.max_dimension})"

    def get_metadata(self) -> dict[str, Any]:
        return {"scale_factor": self._scale_factor}


@dataclass
class UpscaleStep(PreprocessStep):
    """Enlarge small images so their shorter side reaches min_dimension."""

    min_dimension: int
    _upscale_factor: float = field(default=1.0, init=False, repr=False)

    def apply(self, img: np.ndarray) -> np.ndarray:
        upscaled, factor = upscale_to_min_dimension(img, self.min_dimension)
        self._upscale_factor = factor
        return upscaled

    @property
    def name(self) -> str:
        return f"upscale({self.min_dimension})"

    def get_metadata(self) -> dict[str, Any]:
        return {"upscale_factor": self._upscale_factor}


@dataclass(frozen=True)
class ContrastStep(PreprocessStep):
    factor: float

    def apply(self, img: np.ndarray) -> np.ndarray:
        return adjust_contrast(img, self.factor)

    @property
    def name(self) -> str:
        return f"contrast({self.factor})"


@dataclass(frozen=True)
class BrightnessStep(PreprocessStep):
    factor: float

    def apply(self, img: np.ndarray) -> np.ndarray:
        return adjust_brightness(img, self.factor)

    @property
    def name(self) -> str:
        return f"brightness({self.factor})"


@dataclass(frozen=True)
class SharpenStep(PreprocessStep):
    """Unsharp mask."""

    sigma: float = 1.0
    amount: float = 1.0

    def apply(self, img: np.ndarray) -> np.ndarray:
        return sharpen(img, self.sigma, self.amount)

    @property
    def name(self) -> str:
        return f"sharpen(sigma={self.sigma}, amount={self.amount})"


@dataclass(frozen=True)
class NormalizeStep(PreprocessStep):
    """Stretch intensities to the full 0-255 range."""

    percentiles: tuple[float, float] = (1.0, 99.0)

    def apply(self, img: np.ndarray) -> np.ndarray:
        return normalize_range(img, self.percentiles)

    @property
    def name(self) -> str:
        return "normalize"


@dataclass(frozen=True)
class InvertStep(PreprocessStep):
    def apply(self, img: np.ndarray) -> np.ndarray:
        return invert(img)

    @property
    def name(self) -> str:
        return "invert"


@dataclass
class StepResult:
    """Result of applying a single step.

    Attributes:
        name: Name of the step that produced this result.
        image: Output image from the step.
        metadata: Any metadata produced by the step (e.g., scale_factor).
    """

    name: str
    image: np.ndarray
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class PipelineStepResults:
    """Results from running an enhancement pipeline.

    Attributes:
        original: The original input image.
        steps: List of StepResult for each step in order.
    """

    original: np.ndarray
    steps: list[StepResult] = field(default_factory=list)

    @property
    def final(self) -> np.ndarray:
        """Get the final processed image."""
        if not self.steps:
            return self.original
        return self.steps[-1].image

    def get_metadata(self, key: str) -> Any | None:
        """Return the first metadata value stored under key, or None."""
        for step in self.steps:
            if key in step.metadata:
                return step.metadata[key]
        return None

    @property
    def scale_factor(self) -> float:
        """Original size divided by output size (1.0 when not resized)."""
        return self.get_metadata("scale_factor") or 1.0

    @property
    def step_names(self) -> list[str]:
        return [step.name for step in self.steps]


@dataclass
class Pipeline:
    """A sequence of steps applied in order, each feeding the next.

    Attributes:
        steps: List of PreprocessStep instances to apply in order.
    """

    steps: list[PreprocessStep]

    def run(self, img: np.ndarray) -> PipelineStepResults:
        """Run the pipeline on an image, keeping every intermediate result."""
        result = PipelineStepResults(original=img.copy())
        current = img.copy()

        for step in self.steps:
            output = step.apply(current)
            result.steps.append(
                StepResult(
                    name=step.name,
                    image=output,
                    metadata=step.get_metadata(),
                )
            )
            current = output

        return result

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)
