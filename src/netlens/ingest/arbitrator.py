"""
Engine arbitration.

Picks which vendor engine's result to trust for an unlabeled file:

  1. classify the file's log type once from a bounded prefix
  2. score every registered engine on a short sample and boost the scores
     that fit the log type (generic for syslog, vendor engines for configs)
  3. run the engines best-first and accept the first meaningful record
  4. otherwise fall back to the record with the most interfaces
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterator, Optional

from ..detect.anomaly import AnomalyEngine
from ..errors import (
    CancelSignal,
    EngineNotRegisteredError,
    NoUsableParserError,
    ParseCancelled,
    raise_if_cancelled,
)
from ..models.record import CanonicalRecord, LogType, TextValue, Vendor
from .base import CONFIDENCE_LINES, ExtractionEngine
from .classifier import DEFAULT_MAX_LINES, classify_file, read_prefix
from .cisco import CiscoEngine
from .generic import GenericEngine
from .huawei import HuaweiEngine
from .juniper import JuniperEngine
from .mikrotik import MikrotikEngine

_LOGGER = logging.getLogger(__name__)

SYSLOG_BOOST = 30
CONFIG_BOOST = 20
MEANINGFUL_MIN_LINES = 5


class EngineRegistry:
    """Engines keyed by vendor. Populate once, then share read-only."""

    def __init__(self):
        self._engines: dict[Vendor, ExtractionEngine] = {}

    def register(self, engine: ExtractionEngine) -> None:
        self._engines[engine.vendor] = engine

    def get(self, vendor: Vendor) -> Optional[ExtractionEngine]:
        return self._engines.get(vendor)

    def engines(self) -> list[ExtractionEngine]:
        return list(self._engines.values())

    def __contains__(self, vendor) -> bool:
        return vendor in self._engines

    def __iter__(self) -> Iterator[ExtractionEngine]:
        return iter(self.engines())

    def __len__(self) -> int:
        return len(self._engines)


def default_registry(rules: Optional[AnomalyEngine] = None) -> EngineRegistry:
    """Registry with every built-in engine, the generic fallback last."""
    registry = EngineRegistry()
    for engine_cls in (HuaweiEngine, CiscoEngine, JuniperEngine, MikrotikEngine, GenericEngine):
        registry.register(engine_cls(rules))
    return registry


@dataclass
class Candidate:
    engine: ExtractionEngine
    raw: int
    adjusted: int


def is_meaningful(record: CanonicalRecord) -> bool:
    """True when a record carries more than an empty shell."""
    stem = Path(record.source_name).stem
    if record.device and record.device.lower() != stem.lower():
        return True
    if record.interfaces or record.vlans or record.findings:
        return True
    return record.parsed_lines > MEANINGFUL_MIN_LINES


def adjust_score(raw: int, vendor: Vendor, log_type: LogType) -> int:
    adjusted = raw
    if log_type is LogType.SYSLOG:
        if vendor is Vendor.GENERIC:
            adjusted += SYSLOG_BOOST
    elif log_type.is_config_like:
        if vendor is not Vendor.GENERIC:
            adjusted += CONFIG_BOOST
    return min(adjusted, 100)


class Arbitrator:
    """
    Chooses and runs the best engine for a file.

    Args:
        registry: Engines to consider.
        classifier_lines: Prefix length used by the log-type classifier.
        sample_lines: Prefix length handed to ``confidence_score``.
        meaningful: Acceptance predicate for a candidate's record.
    """

    def __init__(
        self,
        registry: Optional[EngineRegistry] = None,
        classifier_lines: int = DEFAULT_MAX_LINES,
        sample_lines: int = CONFIDENCE_LINES,
        meaningful: Callable[[CanonicalRecord], bool] = is_meaningful,
    ):
        self.registry = registry if registry is not None else default_registry()
        self.classifier_lines = classifier_lines
        self.sample_lines = sample_lines
        self.meaningful = meaningful

    def score_candidates(self, path: str | Path) -> tuple[LogType, list[Candidate]]:
        log_type = classify_file(path, self.classifier_lines)
        try:
            sample = read_prefix(path, self.sample_lines)
        except OSError as exc:
            raise NoUsableParserError(str(path), str(exc)) from exc
        candidates = []
        for engine in self.registry:
            try:
                raw = engine.confidence_score(sample)
            except Exception as exc:
                _LOGGER.warning("%s engine failed to score %s: %s", engine.vendor.value, path, exc)
                raw = 0
            candidates.append(Candidate(engine, raw, adjust_score(raw, engine.vendor, log_type)))
        candidates.sort(key=lambda c: (c.adjusted, c.raw), reverse=True)
        _LOGGER.debug(
            "Scores for %s (%s): %s", path, log_type.value,
            ", ".join(f"{c.engine.vendor.value}={c.adjusted}/{c.raw}" for c in candidates),
        )
        return log_type, candidates

    def parse(
        self,
        path: str | Path,
        vendor: Optional[Vendor] = None,
        cancel: Optional[CancelSignal] = None,
    ) -> CanonicalRecord:
        """
        Parse one file into a canonical record.

        Raises:
            EngineNotRegisteredError: ``vendor`` was given but is not registered.
            NoUsableParserError: no engine produced any record.
            ParseCancelled: ``cancel`` was set during parsing.
        """
        path = Path(path)
        if vendor is not None:
            engine = self.registry.get(vendor)
            if engine is None:
                raise EngineNotRegisteredError(vendor)
            record = engine.parse(path, cancel)
            return _tag(record, classify_file(path, self.classifier_lines))

        if not len(self.registry):
            raise NoUsableParserError(str(path), "no engines registered")

        log_type, candidates = self.score_candidates(path)
        tried: list[CanonicalRecord] = []
        for candidate in candidates:
            raise_if_cancelled(cancel)
            engine = candidate.engine
            try:
                record = engine.parse(path, cancel)
            except ParseCancelled:
                raise
            except Exception as exc:
                _LOGGER.warning("%s engine failed on %s: %s", engine.vendor.value, path, exc)
                continue
            tried.append(record)
            if self.meaningful(record):
                _LOGGER.info("Parsed %s with %s engine (score %d)", path.name, engine.vendor.value, candidate.adjusted)
                return _tag(record, log_type)

        if not tried:
            raise NoUsableParserError(str(path), "every engine failed")
        best = max(tried, key=lambda r: (len(r.interfaces), r.parsed_lines))
        _LOGGER.info("No engine produced a clear result for %s; using %s", path.name, best.vendor.value)
        return _tag(best, log_type)


def _tag(record: CanonicalRecord, log_type: LogType) -> CanonicalRecord:
    record.log_type = log_type
    record.vendor_extensions["DetectedLogType"] = TextValue(log_type.value)
    return record


def parse_log_file(
    path: str | Path,
    vendor: Optional[Vendor] = None,
    registry: Optional[EngineRegistry] = None,
    cancel: Optional[CancelSignal] = None,
) -> CanonicalRecord:
    """Convenience wrapper around ``Arbitrator(registry).parse``."""
    return Arbitrator(registry).parse(path, vendor=vendor, cancel=cancel)
