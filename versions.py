import re
from collections import namedtuple

from errors import ValidationError, VersionError

VERSION_PATTERN = re.compile(r'^(\d{1,6})\.(\d{1,6})\.(\d{1,6})$')


class Version(namedtuple('Version', ['major', 'minor', 'patch'])):
    """
    文件版本號 (major, minor, patch)

    tuple 比較本身就是逐欄位的字典序,1.10.0 > 1.9.9
    """
    __slots__ = ()

    def __str__(self):
        return f'{self.major}.{self.minor}.{self.patch}'


INITIAL_VERSION = Version(0, 0, 0)


def parse_version(value):
    """把 "1.2.0" 轉成 Version,格式錯誤丟 ValidationError"""
    if isinstance(value, Version):
        return value

    match = VERSION_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValidationError(
            'Version must have the form MAJOR.MINOR.PATCH',
            details={'version': value}
        )
    return Version(*(int(part) for part in match.groups()))


def ensure_version_increases(stored, proposed):
    """新版本號必須嚴格大於目前的版本號"""
    stored = stored or INITIAL_VERSION
    if proposed <= stored:
        raise VersionError(
            f'Version {proposed} must be greater than current version {stored}',
            details={'current': str(stored), 'proposed': str(proposed)}
        )
    return proposed
