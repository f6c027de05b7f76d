from typing import Any, List, Optional
from pydantic import BaseModel

DEFAULT_SPEAKER_NAME = "匿名"
DEFAULT_SPEAKER_ATTRIBUTE = "一般ユーザー"
DEFAULT_PRODUCT_NAME = "このページの注目商品"
DEFAULT_SELLING_POINT = "ページで紹介されている注目の商品・キャンペーンです。"


class ImagePart(BaseModel):
    data: str       # base64 payload
    mime_type: str  # e.g. "image/jpeg"

    def to_data_url(self) -> str:
        return f"data:{self.mime_type};base64,{self.data}"


class TranscriptTurn(BaseModel):
    id: str
    speaker_name: str
    speaker_attribute: str
    content: str
    timestamp: str  # ISO-8601


class GeneratedComment(BaseModel):
    speaker_name: str = ""
    speaker_attribute: str = ""
    content: str = ""


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (list, tuple)):
        return "、".join(_as_text(item) for item in value if _as_text(item))
    if isinstance(value, dict):
        return "、".join(f"{key}: {_as_text(item)}" for key, item in value.items())
    return str(value).strip()


class ProductAttributes(BaseModel):
    product_name: str = DEFAULT_PRODUCT_NAME
    manufacturer: str = ""
    model_number: str = ""
    price: str = ""
    selling_point: str = DEFAULT_SELLING_POINT
    key_specs: str = ""

    @classmethod
    def from_raw(cls, raw: Any) -> "ProductAttributes":
        """Coerce a loosely-shaped model response into attributes with defaults."""
        data = raw if isinstance(raw, dict) else {}
        return cls(
            product_name=_as_text(data.get("product_name")) or DEFAULT_PRODUCT_NAME,
            manufacturer=_as_text(data.get("manufacturer")),
            model_number=_as_text(data.get("model_number")),
            price=_as_text(data.get("price")),
            selling_point=_as_text(data.get("selling_point")) or DEFAULT_SELLING_POINT,
            key_specs=_as_text(data.get("key_specs")),
        )

    @property
    def display_name(self) -> str:
        """Manufacturer-qualified product name without duplicating the brand."""
        if self.manufacturer and self.manufacturer.lower() not in self.product_name.lower():
            return f"{self.manufacturer} {self.product_name}"
        return self.product_name

    def to_key_features(self) -> str:
        lines: List[Optional[str]] = [
            "【抽出された注目情報】",
            f"- 商品/キャンペーン名: {self.product_name}",
            f"- メーカー: {self.manufacturer}" if self.manufacturer else None,
            f"- 型番: {self.model_number}" if self.model_number else None,
            f"- 価格: {self.price}" if self.price else None,
            f"- 推しポイント: {self.selling_point}",
            f"- 主なスペック: {self.key_specs}" if self.key_specs else None,
        ]
        return "\n".join(line for line in lines if line)

    def to_product_info(self, url: Optional[str] = None, extra: Optional[str] = None) -> str:
        lines: List[Optional[str]] = [
            f"商品/キャンペーン名: {self.product_name}",
            f"メーカー: {self.manufacturer}" if self.manufacturer else None,
            f"型番: {self.model_number}" if self.model_number else None,
            f"価格: {self.price}" if self.price else None,
            f"推しポイント: {self.selling_point}",
            f"主なスペック: {self.key_specs}" if self.key_specs else None,
            f"補足情報: {extra}" if extra else None,
            f"参照URL: {url}" if url else None,
        ]
        return "\n".join(line for line in lines if line)


class ScrapeResult(BaseModel):
    ok: bool
    text: str = ""
    og_image: Optional[str] = None
    error: Optional[str] = None
