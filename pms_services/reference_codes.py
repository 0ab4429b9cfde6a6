"""
pms_services.reference_codes -- Human-readable reference codes per record type.

Responsibility:
    Mint reference codes (``RP00000042``) by pairing the configured
    ``CodeFormat`` of a sequence type with the next number from
    ``SequenceService``.

Architecture position:
    Services layer.  Formats come from ``pms_config``; numbers come from
    the kernel ``SequenceService`` inside the caller's transaction.

Failure modes:
    - KeyError for a sequence type with no configured format.  Checked
      before a number is drawn, so the counter is not advanced.
    - DigitWidthExceededError and persistence errors propagate from
      ``SequenceService``.
"""

from __future__ import annotations

from collections.abc import Mapping

from pms_config.schema import PmsConfig
from pms_kernel.domain.sequence import CodeFormat, SequenceType
from pms_kernel.logging_config import get_logger
from pms_kernel.services.sequence_service import SequenceService

logger = get_logger("services.reference_codes")


class ReferenceCodeService:
    """Mints reference codes using a fixed table of code formats."""

    def __init__(
        self,
        sequence_service: SequenceService,
        formats: Mapping[SequenceType, CodeFormat],
    ) -> None:
        self._sequences = sequence_service
        self._formats = dict(formats)

    @classmethod
    def from_config(
        cls,
        sequence_service: SequenceService,
        config: PmsConfig,
    ) -> ReferenceCodeService:
        return cls(sequence_service, config.sequence_formats)

    def format_for(self, sequence_type: SequenceType) -> CodeFormat:
        """The configured format for ``sequence_type``.

        Raises:
            KeyError: no format is configured.
        """
        try:
            return self._formats[SequenceType(sequence_type)]
        except (KeyError, ValueError):
            raise KeyError(
                f"No code format configured for sequence type {sequence_type!r}"
            ) from None

    def mint(self, sequence_type: SequenceType) -> str:
        """Issue the next reference code for ``sequence_type``."""
        code_format = self.format_for(sequence_type)
        code = self._sequences.generate_code(
            sequence_type,
            code_format.digit_width,
            code_format.concat,
            code_format.position,
        )
        logger.debug(
            "reference_code_minted",
            extra={"sequence_name": SequenceType(sequence_type).name, "code": code},
        )
        return code
