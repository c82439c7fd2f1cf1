"""
Kernel flavors: which execution backend a card belongs to and the notebook
metadata written for it.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field


class KernelFlavor(BaseModel):
    """An execution backend with its own notebook metadata template."""
    name: str
    language: str
    file_label: str
    metadata: dict[str, Any] = Field(default_factory=dict)


PYTHON3 = KernelFlavor(
    name="python3",
    language="python",
    file_label="python3",
    metadata={
        "kernelspec": {
            "display_name": "Python 3",
            "language": "python",
            "name": "python3",
        },
        "language_info": {
            "codemirror_mode": {
                "name": "ipython",
                "version": 3,
            },
            "file_extension": ".py",
            "mimetype": "text/x-python",
            "name": "python",
            "nbconvert_exporter": "python",
            "pygments_lexer": "ipython3",
            "version": "3.6.4",
        },
    },
)

IR = KernelFlavor(
    name="ir",
    language="r",
    file_label="r",
    metadata={
        "kernelspec": {
            "display_name": "R",
            "language": "R",
            "name": "ir",
        },
        "language_info": {
            "codemirror_mode": "r",
            "file_extension": ".r",
            "mimetype": "text/x-r-source",
            "name": "R",
            "pygments_lexer": "r",
            "version": "3.5.0",
        },
    },
)

DEFAULT_FLAVOR = PYTHON3.name

_FLAVORS: dict[str, KernelFlavor] = {}


def register_flavor(flavor: KernelFlavor) -> KernelFlavor:
    """Register a flavor; export order follows registration order."""
    _FLAVORS[flavor.name] = flavor
    return flavor


def unregister_flavor(name: str) -> None:
    _FLAVORS.pop(name, None)


def get_flavor(name: str) -> Optional[KernelFlavor]:
    return _FLAVORS.get(name)


def registered_flavors() -> list[KernelFlavor]:
    return list(_FLAVORS.values())


def language_for(kernel_name: str) -> Optional[str]:
    """Source language for a kernelspec name, or None if unknown."""
    flavor = _FLAVORS.get(kernel_name)
    return flavor.language if flavor else None


register_flavor(PYTHON3)
register_flavor(IR)
