"""Stateless arithmetic, mapping and color nodes."""

from __future__ import annotations

import colorsys
import math
from typing import TYPE_CHECKING, Any

from audio_reactive_toolkit.network.definitions import NodeDefinition, PortSpec, clamp
from audio_reactive_toolkit.network.ports import FrameContext, MathOperation, PortType

if TYPE_CHECKING:
    from audio_reactive_toolkit.network.graph import NodeInstance


class SineNode(NodeDefinition):
    label = "Sine"
    description = "Sine oscillator controlled by time with frequency, phase, amplitude. Outputs raw -A..+A."
    inputs = (
        PortSpec("time", "Time (s)", PortType.NUMBER, 0.0),
        PortSpec("frequency", "Frequency (Hz)", PortType.NUMBER, 1.0),
        PortSpec("phase", "Phase (rad)", PortType.NUMBER, 0.0),
        PortSpec("amplitude", "Amplitude", PortType.NUMBER, 1.0),
    )
    outputs = (PortSpec("value", "Value", PortType.NUMBER),)

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        phase = 2 * math.pi * inputs["frequency"] * inputs["time"] + inputs["phase"]
        return {"value": math.sin(phase) * inputs["amplitude"]}


def _apply_math(a: float, b: float, operation: str) -> float:
    if operation == MathOperation.ADD:
        return a + b
    if operation == MathOperation.SUBTRACT:
        return a - b
    if operation == MathOperation.DIVIDE:
        return a / (b if b != 0 else 1.0)
    if operation == MathOperation.POWER:
        try:
            return math.pow(a, b)
        except (ValueError, OverflowError):
            return 0.0
    if operation == MathOperation.MAX:
        return max(a, b)
    if operation == MathOperation.MIN:
        return min(a, b)
    if operation == MathOperation.MODULO:
        # Sign follows the dividend.
        return math.fmod(a, b) if b != 0 else 0.0
    return a * b


class MathNode(NodeDefinition):
    label = "Math"
    description = "Performs a math operation on A and B. Change operation via its input."
    inputs = (
        PortSpec("a", "A", PortType.NUMBER, 1.0),
        PortSpec("b", "B", PortType.NUMBER, 1.0),
        PortSpec("operation", "Operation", PortType.MATH_OP, MathOperation.MULTIPLY.value),
    )
    outputs = (PortSpec("result", "Result", PortType.NUMBER),)

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        operation = str(getattr(inputs["operation"], "value", inputs["operation"])).lower()
        return {"result": _apply_math(inputs["a"], inputs["b"], operation)}


class NormalizeNode(NodeDefinition):
    label = "Normalize"
    description = "Maps value from [inputMin..inputMax] to [outputMin..outputMax] with clamping."
    inputs = (
        PortSpec("value", "Value", PortType.NUMBER, 0.0),
        PortSpec("inputMin", "Input Min", PortType.NUMBER, 0.0),
        PortSpec("inputMax", "Input Max", PortType.NUMBER, 255.0),
        PortSpec("outputMin", "Output Min", PortType.NUMBER, 0.0),
        PortSpec("outputMax", "Output Max", PortType.NUMBER, 1.0),
    )
    outputs = (PortSpec("result", "Result", PortType.NUMBER),)

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        in_min, in_max = inputs["inputMin"], inputs["inputMax"]
        out_min, out_max = inputs["outputMin"], inputs["outputMax"]
        if in_max - in_min == 0:
            return {"result": out_min}
        normalized = (inputs["value"] - in_min) / (in_max - in_min)
        result = out_min + (out_max - out_min) * normalized
        return {"result": clamp(result, min(out_min, out_max), max(out_min, out_max))}


class ValueMapperNode(NodeDefinition):
    """Look up ``floor(input)`` in a mapping; unmatched keys give ``default``.

    ``mode`` only tells editors how to present mapped values.
    """

    label = "Value Mapper"
    description = (
        "Map number inputs to different output types (colors, strings, numbers). "
        "Useful for mapping beat counts to mode names or indices."
    )
    inputs = (
        PortSpec("input", "Input", PortType.NUMBER, 0.0),
        PortSpec("mode", "Mode", PortType.STRING, "number"),
        PortSpec("mapping", "Mapping", PortType.OBJECT, {}),
        PortSpec("default", "Default", PortType.STRING, "0"),
    )
    outputs = (PortSpec("output", "Output", PortType.STRING),)

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        mapping = inputs["mapping"] if isinstance(inputs["mapping"], dict) else {}
        index = math.floor(inputs["input"])
        for key in (str(index), index):
            if key in mapping:
                return {"output": mapping[key]}
        return {"output": inputs["default"]}


def _hex_color(r: float, g: float, b: float) -> str:
    channels = (int(round(clamp(c, 0.0, 1.0) * 255)) for c in (r, g, b))
    return "#" + "".join(f"{c:02x}" for c in channels)


class HSLColorNode(NodeDefinition):
    label = "HSL Color"
    description = "Builds a color from hue (degrees), saturation and lightness (0..100)."
    inputs = (
        PortSpec("h", "Hue", PortType.NUMBER, 0.0),
        PortSpec("s", "Saturation", PortType.NUMBER, 100.0),
        PortSpec("l", "Lightness", PortType.NUMBER, 50.0),
    )
    outputs = (PortSpec("color", "Color", PortType.COLOR),)

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        hue = (inputs["h"] % 360.0) / 360.0
        saturation = clamp(inputs["s"], 0.0, 100.0) / 100.0
        lightness = clamp(inputs["l"], 0.0, 100.0) / 100.0
        return {"color": _hex_color(*colorsys.hls_to_rgb(hue, lightness, saturation))}


class RGBColorNode(NodeDefinition):
    label = "RGB Color"
    description = "Builds a color from red, green and blue channels (0..255)."
    inputs = (
        PortSpec("r", "Red", PortType.NUMBER, 255.0),
        PortSpec("g", "Green", PortType.NUMBER, 255.0),
        PortSpec("b", "Blue", PortType.NUMBER, 255.0),
    )
    outputs = (PortSpec("color", "Color", PortType.COLOR),)

    def compute(
        self, inputs: dict[str, Any], frame: FrameContext, node: NodeInstance | None = None
    ) -> dict[str, Any]:
        del frame, node
        return {"color": _hex_color(inputs["r"] / 255.0, inputs["g"] / 255.0, inputs["b"] / 255.0)}
