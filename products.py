import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from database import JsonStore, parse_record
from errors import NotFound
from logger import logger
from policy import Action, can_access
from schemas import Principal, Product, ProductCreate, ProductUpdate

PRODUCTS_FILE = "products.json"


def _now() -> datetime:
    return datetime.now(timezone.utc)


class CatalogStore:
    def __init__(self, store: JsonStore):
        self.store = store
        self.path = store.path(PRODUCTS_FILE)

    def initialize(self) -> None:
        self.store.ensure_file(self.path, [])

    def list(self) -> List[Product]:
        return [parse_record(Product, doc, self.path) for doc in self.store.load(self.path, expect=list)]

    def get(self, product_id: str) -> Optional[Product]:
        return next((p for p in self.list() if p.id == product_id), None)

    def create(self, data: ProductCreate) -> Product:
        now = _now()
        product = Product(
            id=uuid.uuid4().hex,
            name=data.name,
            cost=data.cost,
            price=data.price,
            image=data.image,
            is_active=True,
            created_at=now,
            updated_at=now,
        )
        with self.store.update(self.path, expect=list) as products:
            products.append(product.to_document())
        logger.info("Product created", extra={"product_id": product.id})
        return product

    def update(self, product_id: str, patch: ProductUpdate) -> Product:
        # An explicit null only clears the optional image.
        changes = {
            k: v for k, v in patch.model_dump(exclude_unset=True).items()
            if v is not None or k == "image"
        }
        with self.store.update(self.path, expect=list) as products:
            index = self._index(products, product_id)
            current = parse_record(Product, products[index], self.path)
            updated = current.model_copy(update={**changes, "updated_at": _now()})
            products[index] = updated.to_document()
        logger.info("Product updated", extra={"product_id": product_id, "fields": sorted(changes)})
        return updated

    def delete(self, product_id: str) -> Product:
        """Retire the product. The record stays on file with isActive=false."""
        with self.store.update(self.path, expect=list) as products:
            index = self._index(products, product_id)
            current = parse_record(Product, products[index], self.path)
            retired = current.model_copy(update={"is_active": False, "updated_at": _now()})
            products[index] = retired.to_document()
        logger.info("Product retired", extra={"product_id": product_id})
        return retired

    def get_visible(self, principal: Principal, product_id: str) -> Product:
        product = self.get(product_id)
        if product is None or not is_visible(principal, product):
            raise NotFound("Product not found")
        return product

    def list_visible(self, principal: Principal) -> List[Product]:
        return visible_products(principal, self.list())

    @staticmethod
    def _index(products: List[dict], product_id: str) -> int:
        for i, doc in enumerate(products):
            if doc.get("id") == product_id:
                return i
        raise NotFound("Product not found")


def is_visible(principal: Principal, product: Product) -> bool:
    return product.is_active or can_access(principal, None, Action.VIEW_INACTIVE_PRODUCTS)


def visible_products(principal: Principal, products: Iterable[Product]) -> List[Product]:
    return [p for p in products if is_visible(principal, p)]
