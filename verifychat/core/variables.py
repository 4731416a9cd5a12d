import re
from typing import Dict, Mapping, Optional

# {name} tokens; names follow identifier rules so JSON-ish braces are left alone
TOKEN_RE = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def interpolate(template: Optional[str], variables: Mapping[str, str]) -> str:
    """
    Replace every {name} with variables[name].
    Unknown names stay as the literal token, so a prompt may reference a
    variable that has not been captured yet without breaking the chat.
    """
    if not template:
        return ""

    def _sub(m: "re.Match") -> str:
        name = m.group(1)
        if name in variables and variables[name] is not None:
            return str(variables[name])
        return m.group(0)

    return TOKEN_RE.sub(_sub, template)


def capture(variables: Mapping[str, str], name: Optional[str], value: str) -> Dict[str, str]:
    out = dict(variables)
    if name:
        out[name] = value
    return out
