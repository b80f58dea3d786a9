import re
import uuid

_HEX_ID = re.compile(r"^(?P<prefix>[a-z]{3})_[0-9a-f]{32}$")

# prefixes in use: usr, key, lst, shp, mbr, prc, ldg, dep, ntf, aud, idm


def gen_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def is_well_formed_id(value: str, prefix: str) -> bool:
    m = _HEX_ID.match(value or "")
    return m is not None and m.group("prefix") == prefix
