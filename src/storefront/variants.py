"""
Variant resolution: map a requested size and color onto a product variant.
"""

from typing import Optional

from storefront.models import Product, SelectedOption, Variant

SIZE_MARKERS = ("size",)
COLOR_MARKERS = ("color", "colour")


def _option_matches(option: SelectedOption, size: str, color: str) -> bool:
    name = option.name.lower()
    value = option.value.lower()
    if any(marker in name for marker in SIZE_MARKERS) and value == size.lower():
        return True
    if any(marker in name for marker in COLOR_MARKERS) and value == color.lower():
        return True
    return False


def _matches_either_axis(variant: Variant, size: str, color: str) -> bool:
    if not variant.selected_options:
        return True
    return any(_option_matches(opt, size, color) for opt in variant.selected_options)


def _matches_both_axes(variant: Variant, size: str, color: str) -> bool:
    if not variant.selected_options:
        return True
    size_ok = True
    color_ok = True
    for opt in variant.selected_options:
        name = opt.name.lower()
        if any(marker in name for marker in SIZE_MARKERS):
            size_ok = opt.value.lower() == size.lower()
        elif any(marker in name for marker in COLOR_MARKERS):
            color_ok = opt.value.lower() == color.lower()
    return size_ok and color_ok


def resolve_variant(product: Product, size: str, color: str) -> Optional[str]:
    """
    Pick the variant id for a size/color selection.

    A variant is eligible when it declares no options, or when any one of
    its options matches the requested size or the requested color. Matching
    a single axis is enough. The first eligible variant wins; when none is
    eligible the product's first variant is used. Products without variants
    resolve to None.
    """
    if not product.variants:
        return None
    for variant in product.variants:
        if _matches_either_axis(variant, size, color):
            return variant.id
    return product.variants[0].id


def resolve_variant_strict(product: Product, size: str, color: str) -> Optional[str]:
    """Like resolve_variant, but every declared size/color option must match."""
    if not product.variants:
        return None
    for variant in product.variants:
        if _matches_both_axes(variant, size, color):
            return variant.id
    return product.variants[0].id


def variant_for_id(product: Product, variant_id: Optional[str]) -> Optional[Variant]:
    if variant_id is None:
        return None
    return next((v for v in product.variants if v.id == variant_id), None)
