"""Hardware definition answers of a small test installation."""

from __future__ import annotations

from typing import Any


def obj(objnam: str, **params: Any) -> dict[str, Any]:
    """Return a raw hardware definition object."""
    return {"objnam": objnam, "params": params}


def circuits_answer() -> list[dict[str, Any]]:
    """Answer of the CIRCUITS query: bodies, heater and features."""
    module = obj(
        "M0101",
        OBJTYP="MODULE",
        CIRCUITS=[
            obj(
                "B1101",
                OBJTYP="BODY",
                SUBTYP="POOL",
                SNAME="Pool",
                STATUS="ON",
                LSTTMP="78",
                LOTMP="80",
                HITMP="86",
                HEATER="00000",
                HTSRC="00000",
                HTMODE="0",
            ),
            obj(
                "B1202",
                OBJTYP="BODY",
                SUBTYP="SPA",
                SNAME="Spa",
                STATUS="OFF",
                LSTTMP="80",
                LOTMP="100",
                HITMP="104",
                HEATER="00000",
            ),
            obj(
                "H0001",
                OBJTYP="HEATER",
                SUBTYP="GENERIC",
                SNAME="Gas Heater",
                BODY="B1101 B1202",
                COOL="OFF",
            ),
            obj(
                "C0003",
                OBJTYP="CIRCUIT",
                SUBTYP="INTELLI",
                SNAME="Pool Light",
                STATUS="OFF",
                FEATR="ON",
            ),
            obj(
                "C0004",
                OBJTYP="CIRCUIT",
                SUBTYP="GENERIC",
                SNAME="Aux 4",
                STATUS="OFF",
                FEATR="OFF",
            ),
        ],
    )
    feature = obj(
        "FTR01",
        OBJTYP="CIRCUIT",
        SUBTYP="GENERIC",
        SNAME="Waterfall",
        STATUS="OFF",
        FEATR="ON",
    )
    return [obj("PNL01", OBJTYP="PANEL", OBJLIST=[module, feature])]


def pumps_answer() -> list[dict[str, Any]]:
    """Answer of the PUMPS query: one variable speed pump."""
    pump = obj(
        "PMP01",
        OBJTYP="PUMP",
        SUBTYP="SPEED",
        SNAME="Pool Pump",
        STATUS="10",
        MIN="450",
        MAX="3450",
        OBJLIST=[
            obj("p0101", CIRCUIT="B1101", SPEED="2500", SELECT="RPM"),
            obj("p0102", CIRCUIT="FTR01", SPEED="3000", SELECT="RPM"),
        ],
    )
    return [obj("PNL01", OBJTYP="PANEL", OBJLIST=[pump])]


def sensors_answer() -> list[dict[str, Any]]:
    """Answer of the SENSORS query: an air and a water sensor."""
    return [
        obj(
            "PNL01",
            OBJTYP="PANEL",
            OBJLIST=[
                obj("SSS11", OBJTYP="SENSE", SUBTYP="AIR", SNAME="Air Sensor", PROBE="72"),
                obj("SSW11", OBJTYP="SENSE", SUBTYP="POOL", SNAME="Water Sensor", PROBE="78"),
            ],
        )
    ]


def hardware_answers() -> dict[str, list[dict[str, Any]]]:
    """Per-category answers, as the controller returns them."""
    return {
        "CIRCUITS": circuits_answer(),
        "PUMPS": pumps_answer(),
        "SENSORS": sensors_answer(),
    }


def merged_tree() -> list[dict[str, Any]]:
    """The hardware definition after all categories are merged."""
    panel = circuits_answer()[0]
    panel["params"]["OBJLIST"].extend(pumps_answer()[0]["params"]["OBJLIST"])
    panel["params"]["OBJLIST"].extend(sensors_answer()[0]["params"]["OBJLIST"])
    return [panel]
