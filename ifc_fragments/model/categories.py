"""IFC entity type codes (web-ifc numbering) and their names."""

from typing import Dict, Iterable, Set, Union

IFCBEAM = 753842376
IFCBUILDINGELEMENTPROXY = 1095909175
IFCCOLUMN = 843113511
IFCCOVERING = 1973544240
IFCCURTAINWALL = 3495092785
IFCDOOR = 395920057
IFCFOOTING = 900683007
IFCFURNISHINGELEMENT = 263784265
IFCMEMBER = 1073191201
IFCOPENINGELEMENT = 3588315303
IFCPLATE = 3171933400
IFCRAILING = 2262370178
IFCROOF = 2016517767
IFCSLAB = 1529196076
IFCSPACE = 3856911033
IFCSTAIR = 331165859
IFCSTAIRFLIGHT = 4252922144
IFCWALL = 2391406946
IFCWALLSTANDARDCASE = 3512223829
IFCWINDOW = 3304561284

IFC_CATEGORY_MAP: Dict[int, str] = {
    IFCBEAM: "IFCBEAM",
    IFCBUILDINGELEMENTPROXY: "IFCBUILDINGELEMENTPROXY",
    IFCCOLUMN: "IFCCOLUMN",
    IFCCOVERING: "IFCCOVERING",
    IFCCURTAINWALL: "IFCCURTAINWALL",
    IFCDOOR: "IFCDOOR",
    IFCFOOTING: "IFCFOOTING",
    IFCFURNISHINGELEMENT: "IFCFURNISHINGELEMENT",
    IFCMEMBER: "IFCMEMBER",
    IFCOPENINGELEMENT: "IFCOPENINGELEMENT",
    IFCPLATE: "IFCPLATE",
    IFCRAILING: "IFCRAILING",
    IFCROOF: "IFCROOF",
    IFCSLAB: "IFCSLAB",
    IFCSPACE: "IFCSPACE",
    IFCSTAIR: "IFCSTAIR",
    IFCSTAIRFLIGHT: "IFCSTAIRFLIGHT",
    IFCWALL: "IFCWALL",
    IFCWALLSTANDARDCASE: "IFCWALLSTANDARDCASE",
    IFCWINDOW: "IFCWINDOW",
}

_CODES_BY_NAME = {name: code for code, name in IFC_CATEGORY_MAP.items()}


def category_code(value: Union[int, str]) -> int:
    """Resolve an IFC type name ("IfcDoor", "IFCDOOR") or numeric code.

    Raises:
        KeyError: for an unknown type name.
    """
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    return _CODES_BY_NAME[text.upper()]


def category_codes(values: Iterable[Union[int, str]]) -> Set[int]:
    return {category_code(v) for v in values}
