"""
Product master data.

Static catalog of manufacturers and console models. Used for display labels,
the remote inventory category, and the country of origin printed on
commercial invoices.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from domain.product import ProductDescriptor, ProductType

DEFAULT_COUNTRY = "China"
CONSOLE_CATEGORY = "ゲーム機"
SOFTWARE_CATEGORY = "ゲームソフト"


@dataclass(frozen=True, slots=True)
class ConsoleModel:
    value: str
    label: str
    year: int
    country: str


MANUFACTURERS: Dict[str, str] = {
    "nintendo": "任天堂",
    "sony": "SONY",
    "microsoft": "マイクロソフト",
    "other": "その他",
}


def _models(*rows: Tuple[str, str, int, str]) -> Tuple[ConsoleModel, ...]:
    return tuple(ConsoleModel(value, label, year, country) for value, label, year, country in rows)


CONSOLES: Dict[str, Tuple[ConsoleModel, ...]] = {
    "nintendo": _models(
        ("switch-2", "Nintendo Switch 2", 2025, "China"),
        ("switch", "Nintendo Switch", 2017, "China"),
        ("switch-lite", "Nintendo Switch Lite", 2019, "China"),
        ("switch-oled", "Nintendo Switch（有機ELモデル）", 2021, "China"),
        ("new-2ds-ll", "Newニンテンドー2DS LL", 2017, "China"),
        ("wii-u", "Wii U", 2012, "China"),
        ("wii", "Wii", 2006, "China"),
        ("new-3ds-ll", "Newニンテンドー3DS LL", 2014, "China"),
        ("new-3ds", "Newニンテンドー3DS", 2014, "China"),
        ("3ds-ll", "ニンテンドー3DS LL", 2012, "China"),
        ("3ds", "ニンテンドー3DS", 2011, "China"),
        ("dsi", "ニンテンドーDSi", 2008, "China"),
        ("ds-lite", "ニンテンドーDS Lite", 2006, "China"),
        ("ds", "ニンテンドーDS", 2004, "China"),
        ("gamecube", "ゲームキューブ", 2001, "China"),
        ("gba-sp", "ゲームボーイアドバンスSP", 2003, "China"),
        ("gba", "ゲームボーイアドバンス", 2001, "China"),
        ("gbc", "ゲームボーイカラー", 1998, "China"),
        ("n64", "NINTENDO64", 1996, "Japan"),
        ("sfc", "スーパーファミコン", 1990, "Japan"),
        ("gb", "ゲームボーイ", 1989, "Japan"),
        ("fc", "ファミリーコンピュータ", 1983, "Japan"),
    ),
    "sony": _models(
        ("ps5", "PlayStation 5", 2020, "China"),
        ("ps5-digital", "PlayStation 5 デジタル・エディション", 2020, "China"),
        ("ps4-pro", "PlayStation 4 Pro", 2016, "China"),
        ("ps4", "PlayStation 4", 2013, "China"),
        ("ps-vita-2000", "PlayStation Vita (PCH-2000シリーズ)", 2013, "China"),
        ("ps-vita-1000", "PlayStation Vita (PCH-1000シリーズ)", 2011, "China"),
        ("psp-3000", "PSP (PSP-3000シリーズ)", 2008, "China"),
        ("psp-2000", "PSP (PSP-2000シリーズ)", 2007, "China"),
        ("psp-1000", "PSP (PSP-1000シリーズ)", 2004, "China"),
        ("ps3", "PlayStation 3", 2006, "China"),
        ("psp-go", "PSP go", 2009, "China"),
        ("ps2", "PlayStation 2", 2000, "China"),
        ("ps1", "PlayStation", 1994, "Japan"),
    ),
    "microsoft": _models(
        ("xbox-series-x", "Xbox Series X", 2020, "China"),
        ("xbox-series-s", "Xbox Series S", 2020, "China"),
        ("xbox-one-x", "Xbox One X", 2017, "China"),
        ("xbox-one-s", "Xbox One S", 2016, "China"),
        ("xbox-one", "Xbox One", 2013, "China"),
        ("xbox-360", "Xbox 360", 2005, "China"),
        ("xbox", "Xbox", 2002, "China"),
    ),
    "other": _models(
        ("dreamcast", "ドリームキャスト", 1998, "China"),
        ("wonderswan", "ワンダースワン", 1999, "China"),
        ("saturn", "セガサターン", 1994, "Japan"),
        ("neogeo", "ネオジオ", 1990, "Japan"),
        ("pc-engine", "PCエンジン", 1987, "Japan"),
    ),
}


def find_console(console: str, manufacturer: str = "") -> Optional[ConsoleModel]:
    """
    Look up a console model.

    When the manufacturer is unknown every manufacturer's list is searched.
    """

    lists: List[Tuple[ConsoleModel, ...]] = (
        [CONSOLES[manufacturer]] if manufacturer in CONSOLES else list(CONSOLES.values())
    )
    for models in lists:
        for model in models:
            if model.value == console:
                return model
    return None


def country_of_origin(descriptor: ProductDescriptor) -> str:
    model = find_console(descriptor.console, descriptor.manufacturer)
    return model.country if model else DEFAULT_COUNTRY


def category_for(descriptor: ProductDescriptor) -> str:
    return SOFTWARE_CATEGORY if descriptor.product_type == ProductType.SOFTWARE else CONSOLE_CATEGORY


def with_labels(descriptor: ProductDescriptor) -> ProductDescriptor:
    """Fill empty display labels from the catalog."""

    model = find_console(descriptor.console, descriptor.manufacturer)
    return replace(
        descriptor,
        console_label=descriptor.console_label or (model.label if model else ""),
        manufacturer_label=descriptor.manufacturer_label or MANUFACTURERS.get(descriptor.manufacturer, ""),
    )


__all__ = [
    "CONSOLES",
    "CONSOLE_CATEGORY",
    "ConsoleModel",
    "MANUFACTURERS",
    "SOFTWARE_CATEGORY",
    "category_for",
    "country_of_origin",
    "find_console",
    "with_labels",
]
