import string
from typing import Any, Dict, List, Optional, Union

from ._exceptions import ParseError, ValidationError

## Grammar


HTAB = "\t"
SP = " "
obs_text = "".join(chr(i) for i in range(0x80, 0xFF + 1))  # 0x80-0xFF

tchar = "!#$%&'*+-.^_`|~0123456789" + string.ascii_letters
qdtext = "".join(
    [
        HTAB,
        SP,
        "\x21",
        "".join(chr(i) for i in range(0x23, 0x5B + 1)),  # 0x23-0x5b
        "".join(chr(i) for i in range(0x5D, 0x7E + 1)),  # 0x5D-0x7E
        obs_text,
    ]
)

BOOLEAN_FIELDS = [
    "no_store",
]

LIST_FIELDS = [
    "no_cache",
]

__all__ = (
    "CacheControl",
    "Vary",
    "parse_cache_control",
    "parse_pragma",
)


def strip_ows_around(text: str) -> str:
    return text.strip(" ").strip("\t")


def normalize_directive(text: str) -> str:
    return text.replace("-", "_").lower()


def _check_value(value: str) -> None:
    if value[0] == '"':
        if len(value) < 2 or value[-1] != '"':
            raise ParseError("Invalid quotes around the value.")
        for value_char in value[1:-1]:
            if value_char not in qdtext:
                raise ParseError(f"The character '{value_char!r}' is not permitted for the quoted values.")
        return

    for value_char in value:
        if value_char not in tchar:
            raise ParseError(f"The character '{value_char!r}' is not permitted for the unquoted values.")


def parse_cache_control(cache_control_values: List[str]) -> "CacheControl":
    """
    Parses the `no-cache` and `no-store` directives of one or more `Cache-Control`
    header values.

    Other directives are checked against the header grammar and dropped.

    :param cache_control_values: Raw header values, one per header line
    :type cache_control_values: List[str]
    :raises ParseError: When a directive breaks the header grammar
    :raises ValidationError: When a known directive has an invalid argument
    :return: Parsed directives
    :rtype: CacheControl
    """

    directives: Dict[str, Optional[str]] = {}

    for cache_control_value in cache_control_values:
        if "no-cache=" in cache_control_value:
            cache_control_splited = [cache_control_value]
        else:
            cache_control_splited = cache_control_value.split(",")

        for directive in cache_control_splited:
            directive = strip_ows_around(directive)

            if not directive:
                raise ParseError("The directive should not be left blank.")

            key, sep, raw_value = directive.partition("=")
            value: Optional[str] = None

            for key_char in key:
                if key_char not in tchar:
                    raise ParseError(f"The character '{key_char!r}' is not permitted in the directive name.")

            if sep:
                if not raw_value:
                    raise ParseError("The directive value cannot be left blank.")
                _check_value(raw_value)
                value = raw_value
            directives[key] = value

    validated_data = CacheControl.validate(directives)
    return CacheControl(**validated_data)


def parse_pragma(pragma_values: List[str]) -> List[str]:
    return [strip_ows_around(value).lower() for pragma in pragma_values for value in pragma.split(",") if value.strip()]


class Vary:
    def __init__(self, values: List[str]) -> None:
        self._values = values

    @property
    def values(self) -> List[str]:
        return self._values

    @property
    def matches_nothing(self) -> bool:
        return "*" in self._values

    @classmethod
    def from_value(cls, vary_values: List[str]) -> "Vary":
        values = []

        for vary_value in vary_values:
            for field_name in vary_value.split(","):
                field_name = field_name.strip().lower()
                if field_name:
                    values.append(field_name)
        return Vary(values)


class CacheControl:
    def __init__(
        self,
        no_cache: Union[bool, List[str]] = False,  # [RFC9111, Section 5.2.1.4]
        no_store: bool = False,  # [RFC9111, Section 5.2.1.5]
    ) -> None:
        self.no_cache = no_cache
        self.no_store = no_store

    @property
    def forbids_cache(self) -> bool:
        return bool(self.no_cache) or self.no_store

    @classmethod
    def validate(cls, directives: Dict[str, Any]) -> Dict[str, Any]:
        validated_data: Dict[str, Any] = {}

        for key, value in directives.items():
            key = normalize_directive(key)
            if key in BOOLEAN_FIELDS:
                if value is not None:
                    raise ValidationError(f"The directive '{key}' should have no value, but it does.")
                validated_data[key] = True
            elif key in LIST_FIELDS:
                if value is None:
                    validated_data[key] = True
                else:
                    values = []
                    for list_value in value.strip('"').split(","):
                        list_value = strip_ows_around(list_value)
                        if not list_value:
                            raise ValidationError("The list value must not be empty.")
                        values.append(list_value)
                    validated_data[key] = values

        return validated_data
