#!/usr/bin/env python3
"""
Seed script — creates a small ThreadSpire dataset to click around in.

Creates:
  • 6 accounts (password "threadspire")
  • A follow graph (each user follows 2-4 others)
  • 3 threads per user with 2-4 segments and a few tags
  • Reactions, bookmarks and views across threads
  • One remix per user and one draft per user

Run against a running API:
  python scripts/seed_data.py --api-url http://localhost:8000

Tokens and IDs are printed so you can use them in curl commands.
"""
import argparse
import json
import random
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from typing import Optional

PASSWORD = "threadspire"

BASE_USERS = [
    ("alice@threadspire.dev", "Alice Chen"),
    ("bob@threadspire.dev", "Bob Martinez"),
    ("carol@threadspire.dev", "Carol Singh"),
    ("dave@threadspire.dev", "Dave Kim"),
    ("eve@threadspire.dev", "Eve Johnson"),
    ("frank@threadspire.dev", "Frank Williams"),
]

SAMPLE_THREADS = [
    ("On writing in public", ["writing", "habits"], [
        "Writing in public is mostly about showing up.",
        "Nobody reads the first fifty posts. That is the point: they are practice.",
        "Ship the draft, fix it in the remix.",
    ]),
    ("What I learned from a year of journaling", ["journaling", "habits"], [
        "Daily pages are boring, and boring is the feature.",
        "Patterns only appear when you re-read a month at once.",
    ]),
    ("Notes on slow reading", ["reading", "books"], [
        "One chapter a day, with a pencil.",
        "Argue with the margins.",
        "Re-read the last paragraph before you close the book.",
        "Write one sentence about it before bed.",
    ]),
    ("Small web, big ideas", ["web", "indie"], [
        "Personal sites are the original social network.",
        "RSS never died, it just stopped being fashionable.",
    ]),
    ("A gardener's guide to deadlines", ["productivity"], [
        "Plant early, water often, and harvest whatever comes up.",
        "Some projects are perennials. Let them come back next season.",
        "Pull the weeds while they are small.",
    ]),
    ("Why I stopped multitasking", ["focus", "productivity"], [
        "Context switches cost more than the tasks themselves.",
        "Batch the shallow work; protect two hours for the deep work.",
    ]),
    ("Cooking as debugging", ["cooking", "engineering"], [
        "Change one variable at a time: salt, heat, or time.",
        "Taste as you go. Logging for the kitchen.",
        "Write down what worked, because you will not remember.",
    ]),
]

REACTIONS = ["brain", "fire", "clap", "eyes", "warning"]


@dataclass
class ApiClient:
    base_url: str
    token: Optional[str] = None

    def _request(self, method: str, path: str, data: Optional[dict] = None) -> dict:
        url = f"{self.base_url}{path}"
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        body = json.dumps(data).encode() if data is not None else None
        req = urllib.request.Request(url, data=body, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=10) as resp:
                raw = resp.read()
                return json.loads(raw) if raw else {}
        except urllib.error.HTTPError as e:
            print(f"  HTTP {e.code} on {method} {path}: {e.read().decode()}")
            return {}

    def as_user(self, token: str) -> "ApiClient":
        return ApiClient(self.base_url, token)

    def get(self, path: str) -> dict:
        return self._request("GET", path)

    def post(self, path: str, data: Optional[dict] = None) -> dict:
        return self._request("POST", path, data)

    def put(self, path: str, data: Optional[dict] = None) -> dict:
        return self._request("PUT", path, data)


def wait_for_api(client: ApiClient, retries: int = 15) -> None:
    print(f"Waiting for API at {client.base_url} ...")
    for _ in range(retries):
        try:
            result = client.get("/health")
            if result.get("status") == "ok":
                print("  API is ready!\n")
                return
        except (urllib.error.URLError, OSError):
            pass
        time.sleep(3)
    raise RuntimeError(f"API not reachable at {client.base_url} after {retries} retries")


def sign_in(client: ApiClient, email: str, name: str) -> dict:
    result = client.post("/api/auth/signup", {"name": name, "email": email, "password": PASSWORD})
    if not result:
        # already seeded: log in instead
        result = client.post("/api/auth/login", {"email": email, "password": PASSWORD})
    return result


def main(api_url: str) -> None:
    client = ApiClient(api_url)
    wait_for_api(client)

    # ── Accounts ─────────────────────────────────────────────────────────
    print("Creating accounts...")
    users: list[tuple[str, ApiClient]] = []
    for email, name in BASE_USERS:
        result = sign_in(client, email, name)
        if result.get("access_token"):
            users.append((result["user_id"], client.as_user(result["access_token"])))
            print(f"  ✓ {email} ({result['user_id']})")
        else:
            print(f"  ✗ Failed to create {email}")

    if not users:
        print("No accounts created — aborting")
        return
    user_ids = [uid for uid, _ in users]

    # ── Follow graph ─────────────────────────────────────────────────────
    print("\nCreating follow relationships...")
    for uid, api in users:
        others = [u for u in user_ids if u != uid]
        for target in random.sample(others, k=min(random.randint(2, 4), len(others))):
            api.post(f"/api/users/{target}/follow")
    print("  ✓ Follow graph created")

    # ── Threads ──────────────────────────────────────────────────────────
    print("\nCreating threads...")
    thread_ids: list[str] = []
    for uid, api in users:
        for title, tags, segments in random.sample(SAMPLE_THREADS, k=3):
            result = api.post(
                "/api/threads", {"title": title, "segments": segments, "tags": tags}
            )
            if result.get("id"):
                thread_ids.append(result["id"])
    print(f"  ✓ {len(thread_ids)} threads created")
    if not thread_ids:
        print("No threads created — aborting")
        return

    # ── Engagement ───────────────────────────────────────────────────────
    print("\nAdding views, reactions and bookmarks...")
    reactions = 0
    for thread_id in thread_ids:
        for _, api in random.sample(users, k=random.randint(1, len(users))):
            api.get(f"/api/threads/{thread_id}")
            if random.random() < 0.6:
                api.post(f"/api/threads/{thread_id}/reactions/{random.choice(REACTIONS)}")
                reactions += 1
            if random.random() < 0.3:
                api.put(f"/api/threads/{thread_id}/bookmark")
    print(f"  ✓ {reactions} reactions added")

    # ── Remixes and drafts ───────────────────────────────────────────────
    print("\nRemixing and drafting...")
    for _, api in users:
        api.post(f"/api/threads/{random.choice(thread_ids)}/fork")
        api.post(
            "/api/drafts",
            {"title": "Untitled idea", "content": [{"type": "text", "content": "Start here..."}]},
        )
    print("  ✓ One remix and one draft per user")

    # ── Print summary ────────────────────────────────────────────────────
    uid, api = users[0]
    print("\n" + "=" * 60)
    print("Seed complete! Here are some commands to try:\n")
    print("# Trending threads:")
    print(f"  curl -s '{api_url}/api/threads/trending' | python3 -m json.tool\n")
    print(f"# Your drafts as {BASE_USERS[0][0]}:")
    print(f"  curl -s '{api_url}/api/drafts' \\")
    print(f"    -H 'Authorization: Bearer {api.token}' | python3 -m json.tool\n")
    print("# Watch reactions on a thread live:")
    print(f"  websocat '{api_url.replace('http', 'ws', 1)}/ws/threads/{thread_ids[0]}/reactions'\n")
    print("# Check Jaeger traces: http://localhost:16686")
    print("# Check Prometheus: http://localhost:9090")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed a ThreadSpire instance")
    parser.add_argument("--api-url", default="http://localhost:8000", help="API base URL")
    args = parser.parse_args()
    main(args.api_url)
