"""
Directory listing line parsers.

MLSD lines carry machine-readable facts (RFC 3659). LIST output has no
standard grammar; the unix ``ls -l`` style, the DOS ``DIR`` style and the
hostedftp.com variant are recognized.
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone, tzinfo
from enum import Enum
from typing import Callable, List, Optional

from ..exceptions import FTPListingParseError
from .models import Entry, EntryType

ParseFunc = Callable[[str, datetime, tzinfo], Entry]

_MONTHS = {
    name: index
    for index, name in enumerate(
        ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"),
        start=1,
    )
}

_DOS_STAMPS = (
    (re.compile(r"^(\d{2})-(\d{2})-(\d{2})  (\d{2}):(\d{2})(AM|PM)"), "us"),
    (re.compile(r"^(\d{4})-(\d{2})-(\d{2})  (\d{2}):(\d{2})"), "iso"),
)


class ListingFormat(str, Enum):
    """Directory listing grammars, chosen by negotiated capability."""

    MLSD = "MLSD"
    LIST = "LIST"


class UnsupportedListLine(FTPListingParseError):
    """The line does not belong to the format being tried."""

    def __init__(self, line: str) -> None:
        super().__init__(f"unsupported LIST line: {line!r}")
        self.line = line


def _split_fields(line: str, count: int) -> tuple[List[str], str]:
    """Split off ``count`` whitespace separated fields and return the rest."""
    fields = []
    rest = line
    for _ in range(count):
        rest = rest.lstrip(" ")
        if not rest:
            break
        field, _, rest = rest.partition(" ")
        fields.append(field)
    return fields, rest.lstrip(" ")


def _parse_size(value: str) -> int:
    if not value.isdigit():
        raise FTPListingParseError(f"invalid size: {value!r}")
    return int(value)


def _ls_time(month: str, day: str, year_or_time: str, now: datetime, location: tzinfo) -> datetime:
    """Interpret the three date columns of ``ls -l``."""
    month_number = _MONTHS.get(month[:3].lower())
    if month_number is None or not day.isdigit():
        raise FTPListingParseError(f"invalid date: {month} {day} {year_or_time}")

    try:
        if ":" in year_or_time:
            hour, minute = (int(part) for part in year_or_time.split(":", 1))
            stamp = datetime(now.year, month_number, int(day), hour, minute, tzinfo=location)
            # ls shows a time instead of a year for recent files, so a stamp
            # in the future belongs to last year.
            if stamp > now + timedelta(days=1):
                stamp = stamp.replace(year=now.year - 1)
            return stamp

        if len(year_or_time) != 4 or not year_or_time.isdigit():
            raise FTPListingParseError(f"invalid year format in time string: {year_or_time!r}")
        return datetime(int(year_or_time), month_number, int(day), tzinfo=location)
    except ValueError as e:
        raise FTPListingParseError(f"invalid date: {e}") from e


def parse_rfc3659_list_line(line: str, now: datetime, location: tzinfo) -> Entry:
    """
    Parse one MLSD/MLST line, e.g.
    ``type=file;size=1024;modify=20200101120000; notes.txt``.

    ``modify`` facts are UTC by definition and ignore ``location``.
    The ``cdir`` and ``pdir`` entries are named ``.`` and ``..`` whatever
    path the server gives them.
    """
    semicolon = line.find(";")
    space = line.find(" ")
    if semicolon < 0 or space < 0 or semicolon > space:
        raise UnsupportedListLine(line)

    name = line[space + 1:]
    entry_type = EntryType.FILE
    size = 0
    stamp: Optional[datetime] = None

    for fact in line[:space].rstrip(";").split(";"):
        key, sep, value = fact.partition("=")
        if not sep or not key:
            raise UnsupportedListLine(line)
        key = key.lower()
        if key == "modify":
            try:
                stamp = datetime.strptime(value[:14], "%Y%m%d%H%M%S").replace(tzinfo=timezone.utc)
            except ValueError as e:
                raise FTPListingParseError(f"invalid modify fact: {value!r}") from e
        elif key == "type":
            if value.lower() == "cdir":
                entry_type, name = EntryType.FOLDER, "."
            elif value.lower() == "pdir":
                entry_type, name = EntryType.FOLDER, ".."
            elif value.lower() == "dir":
                entry_type = EntryType.FOLDER
            elif value.lower() == "file":
                entry_type = EntryType.FILE
            elif value.lower().startswith("os.unix=slink"):
                entry_type = EntryType.LINK
        elif key == "size":
            size = _parse_size(value)

    return Entry(name=name, type=entry_type, size=size, time=stamp)


def parse_ls_list_line(line: str, now: datetime, location: tzinfo) -> Entry:
    """Parse one unix ``ls -l`` style line."""
    # The permissions field is exactly 10 characters, or 11 with an ACL '+'
    first_space = line.find(" ")
    if not (first_space == 10 or (first_space == 11 and line[10] == "+")):
        raise UnsupportedListLine(line)

    fields, rest = _split_fields(line, 6)
    if len(fields) < 6:
        raise UnsupportedListLine(line)

    if fields[1] == "folder" and fields[2] == "0":
        return Entry(
            name=rest,
            type=EntryType.FOLDER,
            time=_ls_time(fields[3], fields[4], fields[5], now, location),
        )

    if fields[1] == "0":
        more, rest = _split_fields(rest, 1)
        fields += more
        if len(fields) < 7:
            raise UnsupportedListLine(line)
        try:
            size = _parse_size(fields[2])
        except FTPListingParseError:
            raise UnsupportedListLine(line)
        return Entry(
            name=rest,
            type=EntryType.FILE,
            size=size,
            time=_ls_time(fields[4], fields[5], fields[6], now, location),
        )

    more, rest = _split_fields(rest, 2)
    fields += more
    if len(fields) < 8:
        raise UnsupportedListLine(line)

    name = rest
    target = ""
    size = 0
    kind = fields[0][0]
    if kind == "-":
        entry_type = EntryType.FILE
        size = _parse_size(fields[4])
    elif kind == "d":
        entry_type = EntryType.FOLDER
    elif kind == "l":
        entry_type = EntryType.LINK
        link_name, arrow, link_target = name.partition(" -> ")
        if arrow and link_name:
            name, target = link_name, link_target
    else:
        raise FTPListingParseError(f"unknown LIST entry type: {kind!r}")

    return Entry(
        name=name,
        type=entry_type,
        size=size,
        time=_ls_time(fields[5], fields[6], fields[7], now, location),
        target=target,
    )


def parse_dir_list_line(line: str, now: datetime, location: tzinfo) -> Entry:
    """Parse one DOS ``DIR`` style line, e.g. ``01-16-20  09:30PM  <DIR>  docs``."""
    stamp: Optional[datetime] = None
    for pattern, style in _DOS_STAMPS:
        match = pattern.match(line)
        if match is None:
            continue
        try:
            if style == "us":
                month, day, year, hour, minute, meridiem = match.groups()
                hour_number = int(hour) % 12 + (12 if meridiem == "PM" else 0)
                stamp = datetime(
                    2000 + int(year) if int(year) < 69 else 1900 + int(year),
                    int(month), int(day), hour_number, int(minute), tzinfo=location,
                )
            else:
                year, month, day, hour, minute = match.groups()
                stamp = datetime(
                    int(year), int(month), int(day), int(hour), int(minute), tzinfo=location
                )
        except ValueError:
            continue
        line = line[match.end():]
        break

    if stamp is None:
        raise UnsupportedListLine(line)

    line = line.lstrip(" ")
    if line.startswith("<DIR>"):
        return Entry(name=line[len("<DIR>"):].lstrip(" "), type=EntryType.FOLDER, time=stamp)

    size_text, space, name = line.partition(" ")
    if not space:
        raise UnsupportedListLine(line)
    return Entry(
        name=name.lstrip(" "),
        type=EntryType.FILE,
        size=_parse_size(size_text),
        time=stamp,
    )


def parse_hosted_ftp_line(line: str, now: datetime, location: tzinfo) -> Entry:
    """Parse the hostedftp.com format, which omits the link count."""
    if line.find(" ") != 10:
        raise UnsupportedListLine(line)
    fields, rest = _split_fields(line, 2)
    if len(fields) < 2 or fields[1] != "0":
        raise UnsupportedListLine(line)
    return parse_ls_list_line(f"{fields[0]} 1 {rest}", now, location)


_LIST_LINE_PARSERS: tuple[ParseFunc, ...] = (
    parse_rfc3659_list_line,
    parse_ls_list_line,
    parse_dir_list_line,
    parse_hosted_ftp_line,
)


def parse_list_line(line: str, now: datetime, location: tzinfo) -> Entry:
    """Parse one LIST line, trying every known format in turn."""
    for parse in _LIST_LINE_PARSERS:
        try:
            return parse(line, now, location)
        except UnsupportedListLine:
            continue
    raise UnsupportedListLine(line)


def parse_line(
    listing_format: ListingFormat, line: str, now: datetime, location: tzinfo
) -> Entry:
    """Parse a listing line with the grammar of ``listing_format``."""
    if listing_format == ListingFormat.MLSD:
        return parse_rfc3659_list_line(line, now, location)
    return parse_list_line(line, now, location)
