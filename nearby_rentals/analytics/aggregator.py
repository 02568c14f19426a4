from __future__ import annotations

from collections import Counter
from typing import Any


def _rate(count: int, total: int) -> float:
    return round(count / total * 100, 1) if total else 0.0


def compute_analytics(events: list[dict[str, Any]]) -> dict[str, Any]:
    requests = [e for e in events if e["type"] == "recommend"]
    total = len(requests)

    times = [r["response_time_ms"] for r in requests if "response_time_ms" in r]
    avg_time = round(sum(times) / len(times), 1) if times else 0.0

    results = [r.get("results_returned", 0) for r in requests]
    avg_results = round(sum(results) / len(results), 2) if results else 0.0

    # Cache-hit requests never reach the remote service
    fetched = [r for r in requests if not r.get("cache_hit")]
    remote_empty = sum(1 for r in fetched if not r.get("remote_items"))
    fallbacks = sum(1 for r in fetched if r.get("fallback_used"))
    cache_hits = total - len(fetched)

    key_counter: Counter[str] = Counter()
    for r in requests:
        key_counter[r.get("cache_key", "unknown")] += 1
    top_keys = [{"key": k, "count": c} for k, c in key_counter.most_common(10)]

    return {
        "total_requests": total,
        "anchored_requests": sum(1 for r in requests if r.get("anchored")),
        "avg_response_time_ms": avg_time,
        "avg_results_returned": avg_results,
        "empty_results": sum(1 for r in results if r == 0),
        "cache_stats": {
            "hits": cache_hits,
            "misses": len(fetched),
            "hit_rate": _rate(cache_hits, total),
        },
        "remote_stats": {
            "calls": len(fetched),
            "empty_rate": _rate(remote_empty, len(fetched)),
            "fallback_rate": _rate(fallbacks, len(fetched)),
        },
        "top_query_keys": top_keys,
    }
