from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ScrapedProduct(BaseModel):
    """Both captured API payloads from one successful attempt."""

    product_detail: Any
    benefits: Any


class ResultMetadata(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    scraped_at: str = Field(alias="scrapedAt")
    latency: int
    cached: bool = False


class ProductResult(BaseModel):
    """
    Payload returned to callers and stored in the cache.

    Serialized with camelCase keys (productDetail, benefits, metadata.scrapedAt)
    so cached entries and HTTP responses share one shape.
    """

    model_config = ConfigDict(populate_by_name=True)

    product_detail: Any = Field(alias="productDetail")
    benefits: Any
    metadata: ResultMetadata

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "ProductResult":
        return cls.model_validate_json(raw)


class ParsedProductUrl(BaseModel):
    store_name: str
    product_id: str
