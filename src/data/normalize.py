"""normalization of recurring feed payloads into AlertRecord shapes."""

from __future__ import annotations

import hashlib
import json
import re
from datetime import datetime
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup

from src.data.records import AlertRecord, KeyPolicy, parse_timestamp

CME = "cme"
FLARE = "flare"
GEOMAG = "geomag"
SPACE_WEATHER = "space_weather"
NEO = "neo"
JOURNAL = "journal"


def _fmt(ts: Optional[datetime], default: str = "Unknown") -> str:
    return ts.strftime("%Y-%m-%d %H:%M") if ts else default


def payload_hash(payload: Any) -> str:
    """stable md5 of a json payload (key order independent)."""
    return hashlib.md5(json.dumps(payload, sort_keys=True, default=str).encode("utf-8")).hexdigest()


def normalize_cme(alert: Dict[str, Any]) -> Optional[AlertRecord]:
    """donki CME event, keyed by activityID, updated in place."""
    activity_id = alert.get("activityID")
    if not activity_id:
        return None

    start_time = parse_timestamp(alert.get("startTime"))
    return AlertRecord(
        record_type=CME,
        natural_key=activity_id,
        title=f"CME Alert - {_fmt(start_time)}",
        body=(alert.get("note") or "").strip(),
        published_at=start_time,
        policy=KeyPolicy.UPDATE,
        fields={
            "activity_id": activity_id,
            "start_time": alert.get("startTime") or "",
            "alert_data": json.dumps(alert),
        },
    )


def normalize_flare(alert: Dict[str, Any]) -> Optional[AlertRecord]:
    """donki FLR event, keyed by flrID, updated in place."""
    flare_id = alert.get("flrID")
    if not flare_id:
        return None

    begin_time = parse_timestamp(alert.get("beginTime"))
    class_type = alert.get("classType") or "Unknown"
    return AlertRecord(
        record_type=FLARE,
        natural_key=flare_id,
        title=f"Solar Flare - {_fmt(begin_time)} - Class {class_type}",
        body=(alert.get("note") or "").strip(),
        published_at=begin_time,
        policy=KeyPolicy.UPDATE,
        fields={
            "flare_id": flare_id,
            "begin_time": alert.get("beginTime") or "",
            "class_type": class_type,
            "alert_data": json.dumps(alert),
        },
    )


def normalize_space_weather(alert: Dict[str, Any], now: Optional[datetime] = None) -> Optional[AlertRecord]:
    """json space weather alert, keyed by a hash of the whole payload. existing hashes are skipped."""
    if not alert:
        return None

    now = now or datetime.utcnow()
    issued = parse_timestamp(alert.get("issue_datetime"))
    title = alert.get("title") or f"Space Weather Alert - {_fmt(issued or now)}"
    body = alert.get("description") or alert.get("message") or ""
    alert_hash = payload_hash(alert)
    return AlertRecord(
        record_type=SPACE_WEATHER,
        natural_key=alert_hash,
        title=title.strip(),
        body=body.strip(),
        published_at=issued or now,
        policy=KeyPolicy.SKIP_EXISTING,
        fields={"alert_hash": alert_hash, "alert_data": json.dumps(alert)},
    )


def normalize_text_alert(record_type: str, text: str, now: Optional[datetime] = None) -> Optional[AlertRecord]:
    """
    verbatim text bulletin (geomagnetic forecast, space weather text product).

    the newest stored bulletin wins: a new record is written only when the text
    differs byte-for-byte from it.
    """
    if not text or not text.strip():
        return None

    now = now or datetime.utcnow()
    label = "Geomagnetic Alert" if record_type == GEOMAG else "Space Weather Alert"

    product = re.search(r":Product:\s*(.*)", text)
    issued = re.search(r":Issued:\s*(.*)", text)
    stamp = issued.group(1).strip() if issued else _fmt(now)

    fields = {"sync_time": now.isoformat(timespec="seconds")}
    if product:
        fields["product"] = product.group(1).strip()

    # unique per written copy; a bulletin can revert to an earlier text
    digest = hashlib.md5(text.encode("utf-8")).hexdigest()

    return AlertRecord(
        record_type=record_type,
        natural_key=f"{digest}-{now:%Y%m%dT%H%M%S%f}",
        title=f"{label} - {stamp}",
        body=text.strip(),
        published_at=now,
        policy=KeyPolicy.LATEST_TEXT,
        fields=fields,
        content=text,
    )


def normalize_neo(neo: Dict[str, Any]) -> Optional[AlertRecord]:
    """near-earth object from the neo feed, keyed by its id, updated in place."""
    neo_id = neo.get("id")
    if not neo_id:
        return None

    lines = []
    diameter = (neo.get("estimated_diameter") or {}).get("kilometers")
    if diameter:
        lines.append(
            "Estimated Diameter: "
            f"{float(diameter.get('estimated_diameter_min', 0)):.4f} - "
            f"{float(diameter.get('estimated_diameter_max', 0)):.4f} km"
        )

    approach_days = []
    for approach in neo.get("close_approach_data") or []:
        velocity = (approach.get("relative_velocity") or {}).get("kilometers_per_hour")
        miss = (approach.get("miss_distance") or {}).get("kilometers")
        approach_days.append(approach.get("close_approach_date"))
        when = approach.get("close_approach_date_full") or approach.get("close_approach_date") or "Unknown"
        speed = f"{float(velocity):,.0f}" if velocity else "Unknown"
        distance = f"{float(miss):,.0f}" if miss else "Unknown"
        lines.append(f"Close Approach: {when}, velocity {speed} km/h, miss distance {distance} km")

    hazardous = bool(neo.get("is_potentially_hazardous_asteroid"))
    fields = {
        "neo_id": neo_id,
        "hazardous": "yes" if hazardous else "no",
        "neo_data": json.dumps(neo),
    }
    if neo.get("absolute_magnitude_h") is not None:
        fields["magnitude"] = neo["absolute_magnitude_h"]

    return AlertRecord(
        record_type=NEO,
        natural_key=str(neo_id),
        title=(neo.get("name") or f"NEO {neo_id}").strip(),
        body="\n".join(lines),
        published_at=parse_timestamp(approach_days[0]) if approach_days else None,
        policy=KeyPolicy.UPDATE,
        fields=fields,
    )


def normalize_journal_entry(entry: Any, category: str) -> Optional[AlertRecord]:
    """photo-journal rss item, keyed by its link. existing links are skipped."""
    link = entry.get("link")
    if not link:
        return None

    content = ""
    if entry.get("content"):
        content = entry["content"][0].get("value", "")
    description = entry.get("summary", "")

    image_url = None
    for enclosure in entry.get("enclosures") or []:
        if enclosure.get("href"):
            image_url = enclosure["href"]
            break
    if image_url is None and (content or description):
        image = BeautifulSoup(content or description, "html.parser").find("img", src=True)
        if image is not None:
            image_url = image["src"].strip()

    fields = {"journal_url": link, "journal_category": category}
    if image_url:
        fields["image_url"] = image_url

    return AlertRecord(
        record_type=JOURNAL,
        natural_key=link,
        title=(entry.get("title") or link).strip(),
        body=content or description,
        published_at=parse_timestamp(entry.get("published") or entry.get("updated")),
        policy=KeyPolicy.SKIP_EXISTING,
        fields=fields,
    )
