import random
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict

from snapshop.schemas.scan import ScanResult


class FallbackCatalogEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    name: str
    brand: str
    price: str
    confidence: str
    image: str

    def to_result(self) -> ScanResult:
        return ScanResult(
            name=self.name,
            brand=self.brand,
            price=self.price,
            confidence=self.confidence,
            image=self.image,
            ai_powered=False,
        )


# Pre-identified samples shown when no real identification is available
CATALOG: Tuple[FallbackCatalogEntry, ...] = (
    FallbackCatalogEntry(
        id=1,
        name="Air Jordan 1 Retro High OG",
        brand="Nike",
        price="$170.00",
        confidence="98%",
        image="https://images.unsplash.com/photo-1556906781-9a412961d289?auto=format&fit=crop&q=80&w=600",
    ),
    FallbackCatalogEntry(
        id=2,
        name="Sony WH-1000XM5 Headphones",
        brand="Sony",
        price="$348.00",
        confidence="96%",
        image="https://images.unsplash.com/photo-1618366712010-f4ae9c647dcb?auto=format&fit=crop&q=80&w=600",
    ),
    FallbackCatalogEntry(
        id=3,
        name="Eames Lounge Chair",
        brand="Herman Miller",
        price="$6,500.00",
        confidence="99%",
        image="https://images.unsplash.com/photo-1567538096630-e0c55bd6374c?auto=format&fit=crop&q=80&w=600",
    ),
)


def pick_random(rng: Optional[random.Random] = None) -> FallbackCatalogEntry:
    return (rng or random).choice(CATALOG)
