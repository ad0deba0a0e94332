"""Orchestrates bank detection and the parsing fallback chain."""

import logging
from typing import Iterable, List, Mapping, Optional, Sequence, Union

from ..models.core import ConfidenceTier, ParseResult, PipelineConfig
from .bank_configs import BankFormatDetector, BankFormatRegistry
from .base import ParseContext, ParsingStrategy, RawRow
from .config_parser import ConfigStrategy
from .fallback_parser import PositionalStrategy
from .intelligent_parser import IntelligentStrategy

logger = logging.getLogger(__name__)

NO_DATA_WARNING = "No data to parse"

RowInput = Union[Mapping[str, object], Sequence[object]]


def normalize_rows(rows: Iterable[RowInput], headers: Optional[Sequence[str]] = None):
    """Turn mappings or lists of cells into header-keyed dicts.

    When rows are lists and no headers are given, the first row is taken as
    the header row.

    Returns:
        Tuple of (headers, rows)
    """
    rows = list(rows)
    if not rows:
        return list(headers or []), []

    if isinstance(rows[0], Mapping):
        if headers is None:
            seen = {}
            for row in rows:
                for key in row.keys():
                    seen.setdefault(str(key), None)
            headers = list(seen)
        normalized = [
            {str(k): ('' if v is None else str(v)) for k, v in row.items()}
            for row in rows
        ]
        return list(headers), normalized

    if headers is None:
        headers, rows = [str(h) for h in rows[0]], rows[1:]
    headers = [str(h) for h in headers]
    normalized = []
    for cells in rows:
        cells = list(cells)
        row = {}
        for index, header in enumerate(headers):
            value = cells[index] if index < len(cells) else ''
            row[header] = '' if value is None else str(value)
        normalized.append(row)
    return headers, normalized


class UnifiedParser:
    """Parses one statement through detection and an ordered strategy chain.

    The chain short-circuits on the first strategy producing at least one
    transaction. Row problems become warnings on the result; nothing short
    of a programming error raises out of ``parse``.
    """

    def __init__(self, registry: Optional[BankFormatRegistry] = None,
                 config: Optional[PipelineConfig] = None,
                 strategies: Optional[List[ParsingStrategy]] = None):
        self.registry = registry if registry is not None else BankFormatRegistry()
        self.config = config or PipelineConfig()
        self.detector = BankFormatDetector(self.registry)
        self.strategies = strategies if strategies is not None else [
            ConfigStrategy(),
            IntelligentStrategy(),
            PositionalStrategy(),
        ]

    def parse(self, filename: str, rows: Iterable[RowInput],
              headers: Optional[Sequence[str]] = None) -> ParseResult:
        """Parse rows from one file.

        Args:
            filename: Name of the uploaded file, used for bank detection
            rows: Header-keyed mappings, or lists of cells
            headers: Column headers; inferred when omitted

        Returns:
            ParseResult with transactions, detected bank, confidence and warnings
        """
        headers, normalized = normalize_rows(rows, headers)
        if not normalized:
            logger.warning(f"{filename}: {NO_DATA_WARNING}")
            return ParseResult(
                transactions=(),
                detected_bank="Unknown",
                confidence=ConfidenceTier.LOW,
                warnings=(NO_DATA_WARNING,),
            )

        detection = self.detector.detect(filename, headers, normalized[:1])
        context = ParseContext(
            filename=filename,
            headers=headers,
            config=self.config,
            bank_config=detection.config,
            warnings=list(detection.warnings),
        )

        result = None
        for strategy in self.strategies:
            result = strategy.attempt(normalized, context)
            if result is not None and result.transactions:
                logger.info(f"{filename}: {len(result.transactions)} transactions via "
                            f"{strategy.name} parser (confidence {result.confidence.value})")
                return result
            if context.bank_config is not None and strategy.name == "config":
                context.warnings.append(
                    f"Bank format {context.bank_config.name} matched but no rows could be "
                    f"parsed; falling back to column inference"
                )

        warnings = list(result.warnings) if result is not None else list(context.warnings)
        warnings.append("No transactions could be parsed")
        logger.warning(f"{filename}: no transactions could be parsed")
        return ParseResult(
            transactions=(),
            detected_bank=detection.config.name if detection.matched else "Unknown",
            confidence=ConfidenceTier.LOW,
            warnings=tuple(warnings),
        )
