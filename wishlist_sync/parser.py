import logging
import re
from typing import List, Optional
from .errors import ParseError
from .models import ANY_ITEM, WishListAndInfo, WishListRoll

logger = logging.getLogger(__name__)

# DIM uses this item id for rolls that apply to every item
WILDCARD_ITEM_HASH = -69420

TITLE_PREFIX = "title:"
DESCRIPTION_PREFIX = "description:"
BLOCK_NOTES_PREFIX = "//notes:"
DIM_PREFIX = "dimwishlist:"
NOTES_MARKER = "#notes:"

DIM_ROLL_RE = re.compile(r"^dimwishlist:item=(-?\d+)(?:&perks=(\d+(?:,\d+)*)?)?(?:#notes:(.*))?$")
BANSHEE_RE = re.compile(r"^https://banshee-44\.com/\?weapon=(\d+)&socketEntries=(\d+(?:,\d+)*)(?:#notes:(.*))?$")
DTR_RE = re.compile(r"^https://destinytracker\.com/destiny-2/db/items/(\d+)\?perks=(\d+(?:,\d+)*)(?:#notes:(.*))?$")

ITEM_TOKEN_RE = re.compile(r"^(?:\*|[\w.-]+)$")
PERKS_TOKEN_RE = re.compile(r"^(?:\*|[\w.-]+(?:,[\w.-]+)*)$")
HASH_PERKS_TOKEN_RE = re.compile(r"^(?:\*|\d+(?:,\d+)*)$")
POLARITIES = {"wish": False, "trash": True}

# Marks the shorthand perk token as a perk list even when it reads like a word
PERKS_KEY = "perks="

def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    notes = notes.strip()
    return notes or None

def _split_perks(perks: Optional[str]) -> frozenset:
    if not perks or perks == "*":
        return frozenset()
    return frozenset(perks.split(","))

def _parse_header(line: str, prefix: str, line_number: int) -> str:
    value = line[len(prefix):].strip()
    if not value:
        raise ParseError(f"unparseable header: empty {prefix.rstrip(':')}", line_number)
    return value

def _parse_dim_roll(line: str, line_number: int, block_notes: Optional[str]) -> WishListRoll:
    match = DIM_ROLL_RE.match(line)
    if not match:
        raise ParseError(f"malformed roll directive: {line!r}", line_number)

    raw_item = match.group(1)
    if int(raw_item) == WILDCARD_ITEM_HASH:
        item_id, is_undesirable = ANY_ITEM, False
    else:
        # Sign comes from the prefix so that item=-0 stays a trash roll
        item_id, is_undesirable = str(int(raw_item.lstrip("-"))), raw_item.startswith("-")

    return WishListRoll(
        item_id=item_id,
        perks=_split_perks(match.group(2)),
        notes=_clean_notes(match.group(3)) or block_notes,
        is_undesirable=is_undesirable
    )

def _parse_link_roll(line: str, block_notes: Optional[str]) -> Optional[WishListRoll]:
    """banshee-44 and destinytracker links are always wish rolls."""
    match = BANSHEE_RE.match(line) or DTR_RE.match(line)
    if not match:
        return None
    return WishListRoll(
        item_id=match.group(1),
        perks=_split_perks(match.group(2)),
        notes=_clean_notes(match.group(3)) or block_notes
    )

def _looks_like_perks(token: str) -> bool:
    return token == "*" or "," in token or any(ch.isdigit() for ch in token)

def _is_item_hash(token: str) -> bool:
    return token.isascii() and token.isdigit()

def _parse_shorthand_roll(line: str, line_number: int, block_notes: Optional[str]) -> Optional[WishListRoll]:
    """
    `<item> <wish|trash> <perks>[ #notes:...]` where perks is `*`, a comma list, or
    `perks=<list>`. Without the key the list must contain a comma, a digit or be `*`,
    so prose like "I wish you" is skipped. An unknown marker is only fatal on lines
    that are unmistakably rolls: a numeric item hash followed by numeric perks.
    """
    body, _, notes = line.partition(NOTES_MARKER)
    tokens = body.split()
    if len(tokens) != 3:
        return None

    item, marker, perks = tokens
    keyed = perks.startswith(PERKS_KEY)
    if keyed:
        perks = perks[len(PERKS_KEY):]
    if not ITEM_TOKEN_RE.match(item) or not PERKS_TOKEN_RE.match(perks):
        return None
    if not keyed and not _looks_like_perks(perks):
        return None

    polarity = marker.lower()
    if polarity not in POLARITIES:
        if _is_item_hash(item) and HASH_PERKS_TOKEN_RE.match(perks):
            raise ParseError(f"unknown polarity marker {marker!r}", line_number)
        return None

    return WishListRoll(
        item_id=item,
        perks=_split_perks(perks),
        notes=_clean_notes(notes) or block_notes,
        is_undesirable=POLARITIES[polarity]
    )

def parse(raw_text: str) -> WishListAndInfo:
    """
    Parse wish list text into rolls plus optional title/description.
    Unrecognized lines are skipped; broken headers and roll directives raise ParseError.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    rolls: List[WishListRoll] = []
    block_notes: Optional[str] = None
    skipped = 0

    for line_number, raw_line in enumerate(raw_text.lstrip("\ufeff").splitlines(), start=1):
        line = raw_line.strip()

        if not line:
            block_notes = None
            continue

        if line.startswith(TITLE_PREFIX):
            value = _parse_header(line, TITLE_PREFIX, line_number)
            if title is None:
                title = value
            continue

        if line.startswith(DESCRIPTION_PREFIX):
            value = _parse_header(line, DESCRIPTION_PREFIX, line_number)
            if description is None:
                description = value
            continue

        if line.startswith(BLOCK_NOTES_PREFIX):
            block_notes = _clean_notes(line[len(BLOCK_NOTES_PREFIX):])
            continue

        if line.startswith("//"):
            continue

        if line.startswith(DIM_PREFIX):
            rolls.append(_parse_dim_roll(line, line_number, block_notes))
            continue

        roll = _parse_link_roll(line, block_notes) or _parse_shorthand_roll(line, line_number, block_notes)
        if roll is not None:
            rolls.append(roll)
        else:
            skipped += 1

    if skipped:
        logger.debug(f"Skipped {skipped} unrecognized wish list lines")

    return WishListAndInfo(rolls=tuple(rolls), title=title, description=description)

def _is_numeric(value: str) -> bool:
    return value.isascii() and value.isdigit() and str(int(value)) == value

def _roll_line(roll: WishListRoll) -> str:
    perks = sorted(roll.perks)
    notes = f"{NOTES_MARKER}{roll.notes}" if roll.notes else ""

    dim_item: Optional[str] = None
    if roll.item_id == ANY_ITEM and not roll.is_undesirable:
        dim_item = str(WILDCARD_ITEM_HASH)
    elif _is_numeric(roll.item_id):
        if not roll.is_undesirable:
            dim_item = roll.item_id
        elif roll.item_id not in ("0", str(-WILDCARD_ITEM_HASH)):
            # -69420 is the wildcard id; other readers lose the sign of -0
            dim_item = f"-{roll.item_id}"

    if dim_item is not None and all(_is_numeric(p) for p in perks):
        line = f"{DIM_PREFIX}item={dim_item}"
        if perks:
            line += "&perks=" + ",".join(perks)
        return line + notes

    perk_token = ",".join(perks) or "*"
    if not _looks_like_perks(perk_token):
        perk_token = PERKS_KEY + perk_token
    line = f"{roll.item_id} {roll.polarity} {perk_token}"
    return f"{line} {notes}" if notes else line

def to_text(wishlist: WishListAndInfo) -> str:
    """Serialize a wish list back into the line format understood by parse()."""
    lines = []
    if wishlist.title:
        lines.append(f"{TITLE_PREFIX}{wishlist.title}")
    if wishlist.description:
        lines.append(f"{DESCRIPTION_PREFIX}{wishlist.description}")
    lines.extend(_roll_line(roll) for roll in wishlist.rolls)
    return "\n".join(lines) + "\n"
