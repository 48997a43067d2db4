# ── XMP-сайдкары: запись и чтение оценки ──────────────────────────────────────

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path

from config import SIDECAR_EXTENSION, Evaluation

logger = logging.getLogger(__name__)

NS_X = "adobe:ns:meta/"
NS_RDF = "http://www.w3.org/1999/02/22-rdf-syntax-ns#"
NS_XMP = "http://ns.adobe.com/xap/1.0/"
NS_PHOTOGRADE = "http://ns.photograde.app/1.0/"

# Регистрация пространств имён (чтобы ET не генерировал ns0: ns1: ...)
ET.register_namespace("x", NS_X)
ET.register_namespace("rdf", NS_RDF)
ET.register_namespace("xmp", NS_XMP)
ET.register_namespace("photograde", NS_PHOTOGRADE)


def _qn(ns: str, name: str) -> str:
    return f"{{{ns}}}{name}"


def sidecar_path(photo_path: Path) -> Path:
    """DSCF1234.jpg → DSCF1234.xmp рядом с фото."""
    return photo_path.parent / f"{photo_path.stem}{SIDECAR_EXTENSION}"


def generate_xmp(evaluation: Evaluation) -> str:
    """Генерирует XML-строку XMP с рейтингом, меткой и полями оценки."""
    rating = max(1, min(5, int(evaluation.rating)))

    xmpmeta = ET.Element(_qn(NS_X, "xmpmeta"))
    rdf = ET.SubElement(xmpmeta, _qn(NS_RDF, "RDF"))
    ET.SubElement(rdf, _qn(NS_RDF, "Description"), {
        _qn(NS_RDF, "about"): "",
        _qn(NS_XMP, "Rating"): str(rating),
        _qn(NS_XMP, "Label"): "Select" if evaluation.is_worth_keeping else "Reject",
        _qn(NS_PHOTOGRADE, "WorthKeeping"): "True" if evaluation.is_worth_keeping else "False",
        _qn(NS_PHOTOGRADE, "Sharpness"): repr(float(evaluation.sharpness)),
        _qn(NS_PHOTOGRADE, "Exposure"): repr(float(evaluation.exposure)),
        _qn(NS_PHOTOGRADE, "Composition"): repr(float(evaluation.composition)),
        _qn(NS_PHOTOGRADE, "Reasoning"): evaluation.reasoning,
    })

    ET.indent(xmpmeta, space="  ")
    xml_str = ET.tostring(xmpmeta, encoding="unicode", xml_declaration=True)
    return xml_str + "\n"


def write_xmp(
    photo_path: Path,
    evaluation: Evaluation,
    dry_run: bool = False,
    xmp_path: Path | None = None,
) -> Path | None:
    """Записывает XMP-сайдкар рядом с фото (или в xmp_path). Возвращает путь к файлу."""
    xmp_path = xmp_path or sidecar_path(photo_path)

    if dry_run:
        return xmp_path

    xmp_path.write_text(generate_xmp(evaluation), encoding="utf-8")
    return xmp_path


def _field(desc: ET.Element, ns: str, name: str) -> str | None:
    # Редакторы пишут поля то атрибутами, то вложенными элементами
    value = desc.get(_qn(ns, name))
    if value is None:
        value = desc.findtext(_qn(ns, name))
    return value


def _float(value: str | None, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def parse_xmp_string(xml_str: str) -> Evaluation | None:
    """Извлекает Evaluation из XMP. None, если оценки photograde в файле нет."""
    root = ET.fromstring(xml_str)

    for desc in root.iter(_qn(NS_RDF, "Description")):
        keep = _field(desc, NS_PHOTOGRADE, "WorthKeeping")
        if keep is None:
            continue

        try:
            rating = int(_field(desc, NS_XMP, "Rating") or 3)
        except ValueError:
            rating = 3

        return Evaluation(
            is_worth_keeping=keep.strip().lower() == "true",
            rating=max(1, min(5, rating)),
            sharpness=_float(_field(desc, NS_PHOTOGRADE, "Sharpness"), 0.5),
            exposure=_float(_field(desc, NS_PHOTOGRADE, "Exposure"), 0.5),
            composition=_float(_field(desc, NS_PHOTOGRADE, "Composition"), 0.5),
            reasoning=_field(desc, NS_PHOTOGRADE, "Reasoning") or "",
        )

    return None


def parse_xmp(xmp_path: Path) -> Evaluation | None:
    """Читает сайдкар с диска. Нечитаемый или чужой XMP → None."""
    try:
        return parse_xmp_string(xmp_path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, ET.ParseError) as e:
        logger.warning("Cannot parse XMP %s: %s", xmp_path.name, e)
        return None
