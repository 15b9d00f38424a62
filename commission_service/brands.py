import logging

from .errors import DuplicateBrandNameError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)


def _clean_name(name) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Brand name must not be empty")
    return name.strip()


def resolve_brand(store, ref, auto_create: bool = True):
    """
    Resolve a brand reference: by id, then exact name, then name ignoring case.

    An unknown name creates a new brand when ``auto_create`` is set, so a typo
    silently becomes a brand of its own. With ``auto_create`` off it is a
    ValidationError instead.
    """
    ref = _clean_name(ref)
    brand = (
        store.get_brand(ref)
        or store.find_brand_by_name(ref)
        or store.find_brand_by_name(ref, ignore_case=True)
    )
    if brand is not None:
        return brand
    if not auto_create:
        raise ValidationError(f"Unknown brand: {ref}")

    logger.info("Creating brand %r referenced by an order", ref)
    return store.add_brand(ref)


def add_brand(store, name):
    name = _clean_name(name)
    if store.find_brand_by_name(name, ignore_case=True) is not None:
        raise DuplicateBrandNameError(name)
    return store.add_brand(name)


def rename_brand(store, brand_id, name):
    brand = store.get_brand(brand_id)
    if brand is None:
        raise NotFoundError("Brand", brand_id)
    name = _clean_name(name)
    clash = store.find_brand_by_name(name, ignore_case=True)
    if clash is not None and clash.id != brand.id:
        raise DuplicateBrandNameError(name)
    brand.name = name
    store.save_brand(brand)
    return brand


def delete_brand(store, brand_id):
    brand = store.get_brand(brand_id)
    if brand is None:
        raise NotFoundError("Brand", brand_id)
    if store.brand_in_use(brand_id):
        raise ValidationError(f"Brand {brand.name} is referenced by orders")
    store.delete_brand(brand)
