"""
Time-card extraction: one vision call per image, then deterministic repair.

Pipeline:
    raw image -> OCR collaborator -> raw rows + name
    -> row normalization -> weekday consensus -> gap filling -> ExtractionResult
"""
import enum
import json
import logging
import os
import re
import time
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from openai import OpenAI, APITimeoutError, APIConnectionError
from pydantic import ValidationError

from errors import ConfigurationError, ExtractionError
from image_prep import prepare_image
from row_normalization import clean_str, normalize_rows
from schemas import ExtractionResult, RawExtractionPayload
from sequencer import fill_gaps
from weekday_consensus import WEEKDAYS, resolve_offset

logger = logging.getLogger('timecard_worker.extractor')

# Pipeline version for tracking
PIPELINE_VERSION = "2.0.0"

# OpenAI configuration
PRIMARY_VISION_MODEL = os.environ.get("OPENAI_MODEL", "gpt-4.1-mini")
FALLBACK_VISION_MODEL = os.environ.get("OPENAI_FALLBACK_MODEL", "gpt-4.1-mini")
OPENAI_VISION_MODEL_CHAIN = [
    model.strip()
    for model in os.environ.get("OPENAI_VISION_MODEL_CHAIN", "").split(",")
    if model and model.strip()
]
OPENAI_VISION_TIMEOUT_SECONDS = float(os.environ.get("OPENAI_VISION_TIMEOUT_SECONDS", "45"))
OPENAI_VISION_MAX_RETRIES = int(os.environ.get("OPENAI_VISION_MAX_RETRIES", "0"))
OPENAI_VISION_TEMPERATURE = 0.1

EXTRACTION_INSTRUCTION = """
この勤務表（タイムカード）の画像を解析し、データを抽出してください。

以下の情報を抽出してください：
1. 氏名（name）: カード上部に記載されている氏名を探してください。見つからない場合はnullにしてください。

2. 勤怠データ（entries）: 各行について
   - dayInt: 日付の数値（例: 1, 15, 31）
   - date: 日付（数字のみ）
   - dayOfWeek: 曜日（日本語の曜日一文字）
   - startTime1: 開始時間1（HH:mm 24時間表記）
   - endTime1: 終了時間1
   - startTime2: 開始時間2
   - endTime2: 終了時間2

日付の行は、画像に表示されている通りに抽出してください。
開始・終了時間が空欄でも、日付が印字されている場合は抽出してください。
時間は印字されている列のまま出力し、列をずらさないでください。
時間が空欄の場合は、nullではなく空文字("")を出力してください。

出力は次の形のJSONオブジェクトのみとしてください:
{"name": string|null, "entries": [{"dayInt": int, "date": string, "dayOfWeek": string,
"startTime1": string, "endTime1": string, "startTime2": string, "endTime2": string}]}
""".strip()

CODE_FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


class ExtractionStage(str, enum.Enum):
    IDLE = "IDLE"
    REQUESTING = "REQUESTING"
    PARSING = "PARSING"
    NORMALIZING = "NORMALIZING"
    RESOLVING = "RESOLVING"
    FILLING = "FILLING"
    DONE = "DONE"
    FAILED = "FAILED"


# ===========================================
# OCR collaborator
# ===========================================

def _dedupe_models(models: Iterable[Optional[str]]) -> List[str]:
    seen = set()
    ordered: List[str] = []
    for model in models:
        candidate = (model or "").strip()
        if not candidate or candidate in seen:
            continue
        seen.add(candidate)
        ordered.append(candidate)
    return ordered


class VisionClient:
    """Interface of the external OCR service."""

    def check_configuration(self) -> None:
        """Raise ConfigurationError when the client cannot possibly succeed."""

    def read_timecard(self, image_b64: str, mime_type: str, instruction: str) -> Tuple[Optional[str], Optional[str]]:
        """Return ``(response_text, model_name)``; text is None when nothing came back."""
        raise NotImplementedError


class OpenAIVisionClient(VisionClient):
    """Vision OCR through the OpenAI chat completions API in JSON mode."""

    def __init__(
        self,
        primary_model: str = PRIMARY_VISION_MODEL,
        fallback_model: Optional[str] = FALLBACK_VISION_MODEL,
        extra_models: Sequence[str] = tuple(OPENAI_VISION_MODEL_CHAIN),
    ):
        self.models = _dedupe_models([primary_model, fallback_model, *extra_models])
        self._client: Optional[OpenAI] = None

    def check_configuration(self) -> None:
        if not os.environ.get("OPENAI_API_KEY"):
            raise ConfigurationError("OPENAI_API_KEY is not set. Please check your environment variables.")

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self.check_configuration()
            self._client = OpenAI().with_options(
                timeout=OPENAI_VISION_TIMEOUT_SECONDS,
                max_retries=OPENAI_VISION_MAX_RETRIES,
            )
        return self._client

    def read_timecard(self, image_b64: str, mime_type: str, instruction: str) -> Tuple[Optional[str], Optional[str]]:
        client = self._get_client()
        messages = [
            {
                "role": "system",
                "content": (
                    "You extract attendance rows from photographed paper time-cards "
                    "and answer with a single JSON object."
                ),
            },
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": instruction},
                    {"type": "image_url", "image_url": {"url": f"data:{mime_type};base64,{image_b64}"}},
                ],
            },
        ]
        last_error: Optional[Exception] = None

        for attempt_index, model_name in enumerate(self.models, start=1):
            started_at = time.perf_counter()
            try:
                response = client.chat.completions.create(
                    model=model_name,
                    messages=messages,
                    response_format={"type": "json_object"},
                    temperature=OPENAI_VISION_TEMPERATURE,
                )
                text = response.choices[0].message.content if response.choices else None
                if not text:
                    logger.warning(
                        "Time-card read returned no content using model '%s' (attempt %s/%s)",
                        model_name,
                        attempt_index,
                        len(self.models),
                    )
                    continue
                logger.info(
                    "Time-card read completed in %.2fs using model '%s' (attempt %s/%s)",
                    time.perf_counter() - started_at,
                    model_name,
                    attempt_index,
                    len(self.models),
                )
                return text, model_name
            except (APITimeoutError, APIConnectionError) as err:
                last_error = err
                logger.warning(
                    "Time-card read timed out/connection error after %.2fs using model '%s' (attempt %s/%s): %s",
                    time.perf_counter() - started_at,
                    model_name,
                    attempt_index,
                    len(self.models),
                    err,
                )
            except Exception as err:
                last_error = err
                logger.warning(
                    "Time-card read failed after %.2fs using model '%s' (attempt %s/%s): %s",
                    time.perf_counter() - started_at,
                    model_name,
                    attempt_index,
                    len(self.models),
                    err,
                )

        if last_error is not None:
            logger.error("Time-card read failed for all models (%s): %s", ", ".join(self.models), last_error)
            raise ExtractionError(
                f"OCR request failed: {last_error}",
                stage=ExtractionStage.REQUESTING.value,
            ) from last_error
        return None, None


# ===========================================
# Payload parsing
# ===========================================

def find_first_json_object(text: str) -> Optional[Any]:
    """Decode the first well-formed JSON object embedded in free text."""
    cleaned = CODE_FENCE_PATTERN.sub("", text or "")
    decoder = json.JSONDecoder()
    start = cleaned.find("{")
    while start != -1:
        try:
            value, _ = decoder.raw_decode(cleaned, start)
        except json.JSONDecodeError:
            start = cleaned.find("{", start + 1)
            continue
        if isinstance(value, dict):
            return value
        start = cleaned.find("{", start + 1)
    return None


def parse_payload(text: Optional[str]) -> RawExtractionPayload:
    """Turn OCR response text into a tolerant payload model or raise ExtractionError."""
    if not text or not text.strip():
        raise ExtractionError("No data returned from the OCR service", stage=ExtractionStage.PARSING.value)

    data = find_first_json_object(text)
    if data is None:
        raise ExtractionError("OCR response contained no JSON object", stage=ExtractionStage.PARSING.value)

    entries = data.get("entries")
    if entries is None:
        entries = []
    if not isinstance(entries, list):
        raise ExtractionError("OCR payload 'entries' is not a list", stage=ExtractionStage.PARSING.value)

    try:
        return RawExtractionPayload.model_validate({
            "name": data.get("name"),
            "entries": [entry for entry in entries if isinstance(entry, dict)],
        })
    except ValidationError as exc:
        raise ExtractionError(f"OCR payload failed validation: {exc}", stage=ExtractionStage.PARSING.value) from exc


# ===========================================
# Orchestrator
# ===========================================

class TimecardExtractor:
    """Drives one image through OCR, normalization, consensus and gap filling."""

    def __init__(
        self,
        client: Optional[VisionClient] = None,
        alphabet: Sequence[str] = WEEKDAYS,
        instruction: str = EXTRACTION_INSTRUCTION,
    ):
        self.client = client or OpenAIVisionClient()
        self.alphabet = alphabet
        self.instruction = instruction
        self.stage = ExtractionStage.IDLE

    def check_configuration(self) -> None:
        self.client.check_configuration()

    def _advance(self, stage: ExtractionStage) -> None:
        logger.debug("Extraction stage %s -> %s", self.stage.value, stage.value)
        self.stage = stage

    def extract(
        self,
        image_bytes: bytes,
        mime_type: Optional[str] = None,
        file_name: Optional[str] = None,
    ) -> ExtractionResult:
        """
        Extract a complete attendance table from one image.

        Args:
            image_bytes: Raw image bytes (JPEG, PNG, ...)
            mime_type: Declared content type; informational, the image is re-encoded as JPEG
            file_name: Original file name, carried into the result

        Returns:
            ExtractionResult with contiguous, weekday-consistent entries

        Raises:
            ConfigurationError: OCR credentials missing
            ExtractionError: unusable image or OCR payload, or no row with a day
        """
        self.stage = ExtractionStage.IDLE
        try:
            self.check_configuration()
            self._advance(ExtractionStage.REQUESTING)
            try:
                image_b64 = prepare_image(image_bytes)
            except ValueError as exc:
                raise ExtractionError(str(exc), stage=ExtractionStage.REQUESTING.value) from exc
            logger.info(
                "Reading time-card %s (%s bytes, declared %s)",
                file_name or "<unnamed>",
                len(image_bytes),
                mime_type or "unknown",
            )
            text, model_name = self.client.read_timecard(image_b64, "image/jpeg", self.instruction)

            self._advance(ExtractionStage.PARSING)
            payload = parse_payload(text)

            self._advance(ExtractionStage.NORMALIZING)
            rows = normalize_rows(payload.entries)
            if not rows:
                raise ExtractionError(
                    "No extracted row carried a usable day number",
                    stage=ExtractionStage.NORMALIZING.value,
                )

            self._advance(ExtractionStage.RESOLVING)
            offset = resolve_offset(rows, self.alphabet)

            self._advance(ExtractionStage.FILLING)
            entries = fill_gaps(rows, offset, self.alphabet)

            self._advance(ExtractionStage.DONE)
        except Exception:
            self._advance(ExtractionStage.FAILED)
            raise

        logger.info(
            "Extracted %s day entries (%s raw rows) for %s",
            len(entries),
            len(payload.entries),
            file_name or "<unnamed>",
        )
        return ExtractionResult(
            entries=tuple(entries),
            detected_name=clean_str(payload.name),
            file_name=file_name,
            offset=offset,
            model_name=model_name,
        )


def extract_from_image_bytes(image_bytes: bytes, file_name: Optional[str] = None) -> ExtractionResult:
    """Convenience entry point using the default OpenAI-backed extractor."""
    return TimecardExtractor().extract(image_bytes, file_name=file_name)
