"""Image inspection and resizing with Pillow."""

from __future__ import annotations

from typing import Any

from PIL import Image, UnidentifiedImageError

from harper.core.models import ExecutionResult, ExecutionStatus, OperationKind
from harper.exceptions import ToolExecutionError, ValidationFailureError
from harper.tools.models import Tool
from harper.tools.sandbox import resolve_in_root

MAX_DIMENSION = 10_000


class ImageInfoTool(Tool):
    kind = OperationKind.IMAGE_INSPECT
    name = "image_info"
    description = "Show format, dimensions and color mode of an image"
    fields = {"path": str}

    def run(self, args: dict[str, Any]) -> ExecutionResult:
        path = resolve_in_root(self.project_root, args["path"])
        if not path.is_file():
            raise ToolExecutionError(self.name, f"Image not found: {args['path']}")
        try:
            with Image.open(path) as img:
                info = (
                    f"Image: {args['path']}\n"
                    f"Format: {img.format}\n"
                    f"Dimensions: {img.width}x{img.height}\n"
                    f"Mode: {img.mode}"
                )
        except UnidentifiedImageError as e:
            raise ToolExecutionError(self.name, f"Not a recognized image: {args['path']}") from e
        return ExecutionResult(status=ExecutionStatus.SUCCESS, stdout_preview=info)


class ImageResizeTool(Tool):
    kind = OperationKind.IMAGE_RESIZE
    name = "image_resize"
    description = "Resize an image and save it to a new path"
    mutating = True
    fields = {"input": str, "output": str, "width": int, "height": int}

    def check(self, args: dict[str, Any]) -> None:
        for dim in ("width", "height"):
            if not 0 < args[dim] <= MAX_DIMENSION:
                raise ValidationFailureError(f"image_resize: {dim} must be between 1 and {MAX_DIMENSION}")

    def run(self, args: dict[str, Any]) -> ExecutionResult:
        source = resolve_in_root(self.project_root, args["input"])
        target = resolve_in_root(self.project_root, args["output"])
        if not source.is_file():
            raise ToolExecutionError(self.name, f"Image not found: {args['input']}")
        size = (args["width"], args["height"])
        try:
            with Image.open(source) as img:
                resized = img.resize(size)
                target.parent.mkdir(parents=True, exist_ok=True)
                resized.save(target)
        except UnidentifiedImageError as e:
            raise ToolExecutionError(self.name, f"Not a recognized image: {args['input']}") from e
        return ExecutionResult(
            status=ExecutionStatus.SUCCESS,
            message=f"Resized {args['input']} to {size[0]}x{size[1]} -> {args['output']}",
        )
