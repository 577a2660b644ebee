"""
Execution output classification.

Decides whether one run of the generated program succeeded. A clean exit is
necessary but not sufficient: stdout is scanned for errors the program caught
and printed, then put through a battery of quality heuristics (NaN/inf,
accuracy, train/test gap, GPU speedups, stuck loss, degenerate models).
Pure functions of their inputs; thresholds come from QualityThresholds.
"""

import logging
import re
from typing import List, Optional, Sequence, Tuple

from config import QualityThresholds

from .state import ExecutionOutcome, OutcomeKind

logger = logging.getLogger(__name__)

# Tracebacks longer than this are cut down to head + tail before prompting
_TRACE_MAX_LINES = 20
_TRACE_HEAD_LINES = 3
_TRACE_TAIL_LINES = 12

HIDDEN_ERROR_PATTERNS: List[re.Pattern] = [
    re.compile(r"Traceback \(most recent call last\)"),
    re.compile(
        r"\b(?:RuntimeError|ValueError|TypeError|IndexError|KeyError|AttributeError|"
        r"NameError|ImportError|ModuleNotFoundError|ZeroDivisionError|AssertionError|"
        r"FileNotFoundError|MemoryError|OverflowError|NotImplementedError|"
        r"UnboundLocalError|RecursionError|CUDA error|OutOfMemoryError)\b:?"
    ),
    re.compile(r"has no attribute", re.IGNORECASE),
    re.compile(r"cannot be broadcast", re.IGNORECASE),
    re.compile(r"shapes? .{0,40}not aligned", re.IGNORECASE),
    re.compile(r"training failed", re.IGNORECASE),
    re.compile(r"an error occurred", re.IGNORECASE),
]

_NUM = r"([-+]?\d*\.?\d+(?:[eE][-+]?\d+)?)"

_NAN_RE = re.compile(r"\bnan\b", re.IGNORECASE)
_INF_RE = re.compile(r"\binf\b", re.IGNORECASE)
_ACCURACY_RE = re.compile(r"\b(?:accuracy|acc)\s*[:=]\s*" + _NUM + r"\s*(%)?", re.IGNORECASE)
_TEST_ACC_RE = re.compile(r"\b(?:test|val(?:idation)?)[ _-]?acc(?:uracy)?\s*[:=]\s*" + _NUM + r"\s*(%)?", re.IGNORECASE)
_TRAIN_ACC_RE = re.compile(r"\btrain(?:ing)?[ _-]?acc(?:uracy)?\s*[:=]\s*" + _NUM + r"\s*(%)?", re.IGNORECASE)
_ZERO_ACC_RE = re.compile(r"\b(?:accuracy|acc)\s*[:=]\s*0(?:\.0+)?\s*%?(?![\d.])", re.IGNORECASE)
_LOSS_RE = re.compile(r"\bloss\s*[:=]\s*" + _NUM, re.IGNORECASE)

_SPEEDUP_HINT_RE = re.compile(r"speed[ -]?up|gpu[ _]?time|cpu[ _]?time", re.IGNORECASE)
_INLINE_SPEEDUP_RE = re.compile(r"speed[ -]?up\s*(?:[:=]|of|is)?\s*" + _NUM + r"\s*x?", re.IGNORECASE)
_GPU_TIME_RE = re.compile(r"\bgpu[ _]?time\s*[:=]\s*" + _NUM, re.IGNORECASE)
_CPU_TIME_RE = re.compile(r"\bcpu[ _]?time\s*[:=]\s*" + _NUM, re.IGNORECASE)
_TABLE_ROW_RE = re.compile(r"^\s*\|(.+)\|\s*$")
_CELL_NUM_RE = re.compile(r"^\s*" + _NUM + r"\s*(?:x|s|ms|sec)?\s*$", re.IGNORECASE)


def truncate_trace(text: str) -> str:
    """Keep the first 3 and last 12 lines of a long traceback."""
    lines = text.rstrip("\n").split("\n")
    if len(lines) <= _TRACE_MAX_LINES:
        return text
    omitted = len(lines) - _TRACE_HEAD_LINES - _TRACE_TAIL_LINES
    return "\n".join(
        lines[:_TRACE_HEAD_LINES]
        + [f"  ... ({omitted} lines omitted) ..."]
        + lines[-_TRACE_TAIL_LINES:]
    )


def find_hidden_error(stdout: str) -> Optional[str]:
    """Return the first hidden-error pattern found in stdout, if any."""
    for pattern in HIDDEN_ERROR_PATTERNS:
        if pattern.search(stdout):
            return pattern.pattern
    return None


# ------------------------------------------------------------------
# Quality validation
# ------------------------------------------------------------------

def _as_fraction(value: str, percent: Optional[str]) -> float:
    v = float(value)
    if percent or v > 1.0:
        return v / 100.0
    return v


def _fractions(pattern: re.Pattern, text: str) -> List[float]:
    out = []
    for m in pattern.finditer(text):
        try:
            out.append(_as_fraction(m.group(1), m.group(2)))
        except ValueError:
            continue
    return out


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def _ratio_consistent(values: Sequence[float]) -> bool:
    """True when the third column reads as cpu/gpu of the first two."""
    if len(values) < 3 or values[0] <= 0:
        return False
    expected = values[1] / values[0]
    return abs(values[2] - expected) <= 0.25 * max(values[2], expected)


def _parse_table_speedups(stdout: str) -> List[Tuple[str, float, float, Optional[float]]]:
    """Benchmark rows as (task, gpu_time, cpu_time, speedup).

    Column order comes from a header row naming GPU and CPU when there is one.
    Without a header, rows are read as | task | gpu | cpu | speedup | but only
    counted when the output talks about speedups or the row's own numbers
    line up as a ratio. Rows under any other header are ignored.
    """
    hinted = bool(_SPEEDUP_HINT_RE.search(stdout))
    rows = []
    header = None  # None | "bench" | "other"
    gpu_idx, cpu_idx, speedup_idx = 0, 1, 2
    for line in stdout.splitlines():
        m = _TABLE_ROW_RE.match(line)
        if not m:
            continue
        cells = [c.strip() for c in m.group(1).split("|")]
        if len(cells) < 3 or set("".join(cells)) <= set("-: "):
            continue
        nums = [_CELL_NUM_RE.match(c) for c in cells[1:]]
        if not all(nums):
            lowered = [c.lower() for c in cells[1:]]
            g = [i for i, c in enumerate(lowered) if "gpu" in c and "speed" not in c]
            c_ = [i for i, c in enumerate(lowered) if "cpu" in c and "speed" not in c]
            s = [i for i, c in enumerate(lowered) if "speed" in c]
            if g and c_:
                header = "bench"
                gpu_idx, cpu_idx = g[0], c_[0]
                speedup_idx = s[0] if s else None
            else:
                header = "other"
            continue
        if header == "other":
            continue
        values = [float(n.group(1)) for n in nums]
        if header is None and not (hinted or _ratio_consistent(values)):
            continue
        if max(gpu_idx, cpu_idx) >= len(values):
            continue
        speedup = values[speedup_idx] if speedup_idx is not None and speedup_idx < len(values) else None
        rows.append((cells[0], values[gpu_idx], values[cpu_idx], speedup))
    return rows


def _on_table_line(stdout: str, pos: int) -> bool:
    """True when the match at ``pos`` sits on a ``| ... |`` row already covered by the table scan."""
    line_start = stdout.rfind("\n", 0, pos) + 1
    return stdout[line_start:].lstrip().startswith("|")


def _speedup_findings(stdout: str, t: QualityThresholds) -> List[str]:
    findings: List[str] = []
    table_rows = _parse_table_speedups(stdout)
    if not table_rows and not _SPEEDUP_HINT_RE.search(stdout):
        return findings

    for name, gpu, cpu, speedup in table_rows:
        if gpu > cpu or (speedup is not None and speedup < t.min_speedup):
            ratio = speedup if speedup is not None else (cpu / gpu if gpu else 0.0)
            findings.append(
                f"GPU slower than CPU for '{name}' (GPU {gpu:g} vs CPU {cpu:g}, speedup {ratio:.2f}x): "
                "the GPU path is not vectorised or is dominated by transfer/launch overhead"
            )

    for m in _INLINE_SPEEDUP_RE.finditer(stdout):
        if _on_table_line(stdout, m.start()):
            continue
        ratio = float(m.group(1))
        if ratio < t.min_speedup:
            line_start = stdout.rfind("\n", 0, m.start()) + 1
            name = re.sub(r"[^\w ./-]+", " ", stdout[line_start:m.start()]).strip() or "benchmark"
            findings.append(
                f"GPU speedup below {t.min_speedup:g}x for '{name}' ({ratio:.2f}x): "
                "the GPU implementation is slower than the CPU baseline"
            )
    gpu_times = [float(m.group(1)) for m in _GPU_TIME_RE.finditer(stdout) if not _on_table_line(stdout, m.start())]
    cpu_times = [float(m.group(1)) for m in _CPU_TIME_RE.finditer(stdout) if not _on_table_line(stdout, m.start())]
    for i, (gpu, cpu) in enumerate(zip(gpu_times, cpu_times), start=1):
        if gpu > cpu:
            findings.append(
                f"GPU time exceeds CPU time for measurement #{i} ({gpu:g} > {cpu:g}): "
                "the GPU path is not vectorised"
            )
    return findings


def validate_quality(stdout: str, thresholds: Optional[QualityThresholds] = None) -> List[str]:
    """Run every output-quality heuristic; return the findings (empty = plausible)."""
    t = thresholds or QualityThresholds()
    findings: List[str] = []

    nan_count = len(_NAN_RE.findall(stdout))
    if nan_count >= t.nan_min_count:
        findings.append(f"NaN appears {nan_count} times in the output: numerical instability (exploding values, log(0), 0/0)")

    inf_count = len(_INF_RE.findall(stdout))
    if inf_count >= t.inf_min_count:
        findings.append(f"inf appears {inf_count} times in the output: numerical overflow")

    accuracies = _fractions(_ACCURACY_RE, stdout)
    if len(accuracies) >= t.min_accuracy_samples:
        recent = accuracies[-t.accuracy_window:]
        avg = _mean(recent)
        if avg < t.min_average_accuracy:
            findings.append(
                f"Low accuracy: average of the last {len(recent)} readings is {avg:.1%} "
                f"(expected at least {t.min_average_accuracy:.0%}); the model is not learning"
            )

    test_acc = _fractions(_TEST_ACC_RE, stdout)
    train_acc = _fractions(_TRAIN_ACC_RE, stdout)
    if len(test_acc) >= t.min_test_accuracy_samples and train_acc:
        test_avg, train_avg = _mean(test_acc), _mean(train_acc)
        if test_avg < t.test_accuracy_floor and train_avg - test_avg > t.train_test_gap:
            findings.append(
                f"Evaluation bug: test accuracy averages {test_avg:.1%} while train accuracy averages "
                f"{train_avg:.1%}; check label alignment, eval mode and the test data pipeline"
            )

    findings.extend(_speedup_findings(stdout, t))

    losses = [float(m.group(1)) for m in _LOSS_RE.finditer(stdout)]
    if len(losses) >= t.min_loss_samples and losses[0] > 0:
        if losses[-1] >= t.stuck_loss_ratio * losses[0]:
            findings.append(
                f"Training is stuck: loss went from {losses[0]:g} to {losses[-1]:g} over "
                f"{len(losses)} readings (less than {1 - t.stuck_loss_ratio:.0%} improvement)"
            )

    zero_acc = len(_ZERO_ACC_RE.findall(stdout))
    if zero_acc > t.max_zero_accuracy_readings:
        findings.append(f"Degenerate model: accuracy is exactly 0 in {zero_acc} readings")

    return findings


def classify(
    stdout: str,
    did_process_raise: bool,
    stderr_if_raised: str = "",
    thresholds: Optional[QualityThresholds] = None,
) -> ExecutionOutcome:
    """Classify one execution. Same inputs always give the same outcome."""
    if did_process_raise:
        diagnostic = truncate_trace(stderr_if_raised or "Process exited with an error and no stderr output")
        return ExecutionOutcome(False, stdout, diagnostic, OutcomeKind.CRASH)

    hidden = find_hidden_error(stdout)
    if hidden:
        logger.info(f"Hidden error in stdout (pattern: {hidden})")
        return ExecutionOutcome(False, stdout, stdout, OutcomeKind.HIDDEN_ERROR)

    findings = validate_quality(stdout, thresholds)
    if findings:
        diagnostic = "\n".join(f"Quality check FAILED: {f}" for f in findings)
        return ExecutionOutcome(False, stdout, diagnostic, OutcomeKind.QUALITY_FAILURE, findings)

    return ExecutionOutcome(True, stdout, "", OutcomeKind.SUCCESS)
