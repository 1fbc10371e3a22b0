"""LayoutLM token-classification backend for the context engine.

Tags OCR words with BIO labels using text and layout features, then
aggregates the tagged spans into model entities. The model is loaded on
first use.
"""

import torch
from transformers import AutoModelForTokenClassification, AutoTokenizer

from docpipe.models import OCRResult, TextBlock
from docpipe.utils.logger import get_logger

from .engine import ModelEntity, ModelOutput

logger = get_logger(__name__)


LABEL_MAP: dict[int, str] = {
    0: "O",
    1: "B-DATE",
    2: "I-DATE",
    3: "B-VENDOR",
    4: "I-VENDOR",
    5: "B-TOTAL",
    6: "I-TOTAL",
    7: "B-ITEM",
    8: "I-ITEM",
    9: "B-TAX",
    10: "I-TAX",
}

FIELD_TO_ENTITY: dict[str, str] = {
    "DATE": "date",
    "VENDOR": "organization",
    "TOTAL": "total",
    "ITEM": "line_item",
    "TAX": "tax",
}

_RECEIPT_FIELDS = {"TOTAL", "ITEM", "TAX"}


def normalize_boxes(
    blocks: tuple[TextBlock, ...],
) -> list[tuple[str, tuple[int, int, int, int]]]:
    """Split blocks into words with boxes scaled to the 0-1000 range.

    Every word inherits its block's box; the page extent is taken from
    the furthest block edges.

    Args:
        blocks: OCR text blocks.

    Returns:
        ``(word, (x1, y1, x2, y2))`` pairs.
    """
    if not blocks:
        return []
    width = max(b.bounding_box.right for b in blocks) or 1
    height = max(b.bounding_box.bottom for b in blocks) or 1
    words: list[tuple[str, tuple[int, int, int, int]]] = []
    for block in blocks:
        box = block.bounding_box
        scaled = (
            int(box.x * 1000 / width),
            int(box.y * 1000 / height),
            int(box.right * 1000 / width),
            int(box.bottom * 1000 / height),
        )
        words.extend((word, scaled) for word in block.text.split())
    return words


class LayoutLMBackend:
    """LayoutLM-based context backend.

    Args:
        model_name: Hugging Face model identifier.
        device: Torch device (``"cuda"`` or ``"cpu"``). Auto-detected if ``None``.
    """

    name = "layoutlm"

    def __init__(
        self,
        model_name: str = "microsoft/layoutlm-base-uncased",
        device: str | None = None,
    ) -> None:
        self.model_name = model_name
        self.device = device or ("cuda" if torch.cuda.is_available() else "cpu")
        self._tokenizer = None
        self._model = None

    def _load(self) -> None:
        if self._model is not None:
            return
        logger.info("Loading LayoutLM model: %s on %s", self.model_name, self.device)
        self._tokenizer = AutoTokenizer.from_pretrained(self.model_name)
        self._model = AutoModelForTokenClassification.from_pretrained(
            self.model_name, num_labels=len(LABEL_MAP)
        ).to(self.device)
        self._model.eval()

    def predict(self, ocr_result: OCRResult) -> ModelOutput:
        """Tag the OCR words and build the model output.

        Args:
            ocr_result: OCR output with positioned blocks.

        Returns:
            Model output with entities; relationships are left to the engine.
        """
        words_and_boxes = normalize_boxes(ocr_result.blocks)
        if not words_and_boxes:
            return ModelOutput(document_type="unknown", confidence=0.3)

        self._load()
        words = [w for w, _ in words_and_boxes]
        boxes = [b for _, b in words_and_boxes]

        encoding = self._tokenizer(
            words,
            is_split_into_words=True,
            return_tensors="pt",
            truncation=True,
            max_length=512,
        )
        word_ids = encoding.word_ids(0)
        token_boxes = [
            boxes[idx] if idx is not None else (0, 0, 0, 0) for idx in word_ids
        ]
        inputs = {k: v.to(self.device) for k, v in encoding.items()}
        inputs["bbox"] = torch.tensor([token_boxes], device=self.device)

        with torch.no_grad():
            outputs = self._model(**inputs)

        predictions = outputs.logits.argmax(-1).squeeze(0).tolist()
        probabilities = torch.softmax(outputs.logits, dim=-1)
        confidences = probabilities.max(-1).values.squeeze(0).tolist()

        # First sub-token of each word carries the word's label.
        word_predictions: dict[int, tuple[int, float]] = {}
        for token_idx, word_idx in enumerate(word_ids):
            if word_idx is not None and word_idx not in word_predictions:
                word_predictions[word_idx] = (
                    predictions[token_idx],
                    confidences[token_idx],
                )

        tagged = [
            (words[i], *word_predictions[i]) for i in sorted(word_predictions)
        ]
        entities = self._aggregate_fields(tagged)
        return self._build_output(entities)

    @staticmethod
    def _aggregate_fields(
        tagged: list[tuple[str, int, float]],
    ) -> list[tuple[str, str, float]]:
        """Aggregate BIO-tagged words into ``(field, text, confidence)`` spans."""
        fields: list[tuple[str, str, float]] = []
        current_field: str | None = None
        current_words: list[str] = []
        current_conf: list[float] = []

        def flush() -> None:
            if current_field:
                fields.append(
                    (
                        current_field,
                        " ".join(current_words),
                        sum(current_conf) / len(current_conf),
                    )
                )

        for word, pred, conf in tagged:
            label = LABEL_MAP.get(pred, "O")
            if label.startswith("B-"):
                flush()
                current_field, current_words, current_conf = label[2:], [word], [conf]
            elif label.startswith("I-") and current_field == label[2:]:
                current_words.append(word)
                current_conf.append(conf)
            else:
                flush()
                current_field, current_words, current_conf = None, [], []
        flush()

        logger.info("LayoutLM tagged %d fields", len(fields))
        return fields

    @staticmethod
    def _build_output(fields: list[tuple[str, str, float]]) -> ModelOutput:
        entities = [
            ModelEntity(type=FIELD_TO_ENTITY[name], value=text, confidence=conf)
            for name, text, conf in fields
            if name in FIELD_TO_ENTITY
        ]
        found = {name for name, _, _ in fields}
        document_type = "receipt" if found & _RECEIPT_FIELDS else "unknown"
        confidence = (
            sum(conf for _, _, conf in fields) / len(fields) if fields else 0.3
        )
        return ModelOutput(
            document_type=document_type,
            confidence=confidence,
            entities=entities,
        )
