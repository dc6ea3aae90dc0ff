#!/usr/bin/env python3
"""
Smoke test against a running Grievance Desk API.
Run: python -m grievance_desk.smoke [http://localhost:5001/api]

Exits non-zero if any step fails.
"""
import asyncio
import sys
from datetime import datetime

import httpx

from .config import API_BASE_URL

TIMEOUT = httpx.Timeout(10.0, connect=3.0)


def _ts(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _json(resp: httpx.Response) -> dict:
    """Body as a dict; empty when the response is not JSON (e.g. a proxy error page)."""
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


SAMPLE_GRIEVANCE = {
    "title": "Broken AC in Room 204",
    "description": "The air conditioning unit in hostel room 204 has been non-functional for five days.",
    "category": "hostel",
}

SAMPLE_FILE = (
    "test-document.txt",
    b"Test Document for Grievance System\nThis is a test file to verify the upload functionality.\n",
    "text/plain",
)


async def run_smoke(base_url: str, transport: httpx.AsyncBaseTransport = None) -> list:
    base_url = base_url.rstrip("/")
    results = []

    def check(step: str, ok: bool, detail: str = ""):
        results.append((step, "OK" if ok else "FAIL", detail))
        return ok

    async with httpx.AsyncClient(base_url=base_url, timeout=TIMEOUT, transport=transport) as c:
        try:
            resp = await c.get("/health")
            check("health", resp.status_code == 200, _json(resp).get("status") or str(resp.status_code))

            resp = await c.post("/grievances", json=SAMPLE_GRIEVANCE)
            if not check("submit", resp.status_code == 201, str(resp.status_code)):
                return results
            created = resp.json()["data"]
            gid = created["id"]

            resp = await c.get(f"/grievances/{gid}")
            check("fetch", resp.status_code == 200 and resp.json()["title"] == SAMPLE_GRIEVANCE["title"], gid)

            resp = await c.put(f"/grievances/{gid}/status", json={"status": "resolved"})
            check("update status", resp.status_code == 200
                  and _ts(resp.json()["data"]["updated_at"]) > _ts(created["updated_at"]), str(resp.status_code))

            resp = await c.post("/upload", files=[("files", SAMPLE_FILE)],
                                data={"grievanceId": gid, "description": "smoke test"})
            if not check("upload", resp.status_code == 200, str(resp.status_code)):
                return results
            file_id = resp.json()["files"][0]["id"]

            resp = await c.get(f"/files/{gid}")
            check("list files", resp.status_code == 200 and len(resp.json()["files"]) == 1)

            resp = await c.delete(f"/files/{file_id}")
            check("delete file", resp.status_code == 200)

            resp = await c.get(f"/download/{file_id}")
            check("download after delete", resp.status_code == 404, str(resp.status_code))
        except httpx.HTTPError as e:
            check("connection", False, f"{type(e).__name__}: {e}")
        except (ValueError, KeyError, IndexError) as e:
            check("response", False, f"unexpected body: {type(e).__name__}: {e}")
    return results


def main(argv=None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    base_url = argv[0] if argv else API_BASE_URL
    print(f"Testing Grievance Desk API at {base_url}\n")
    results = asyncio.run(run_smoke(base_url))
    for step, status, detail in results:
        print(f"  {status:<5} {step}" + (f"  ({detail})" if detail else ""))
    failed = [r for r in results if r[1] != "OK"]
    print(f"\nDone! Passed: {len(results) - len(failed)}, Failed: {len(failed)}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
