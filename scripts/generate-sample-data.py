#!/usr/bin/env python3
"""
DevTrack — Sample Data Generator
Generates a consistent demo dataset aligned with the current database models:
admins, managers, developers, projects, tasks, assignments, work logs and
comments. Used for development, demos and analytics smoke checks.

Usage:
    python scripts/generate-sample-data.py
    python scripts/generate-sample-data.py --developers 12 --projects 6 --output sample-data.json
    DATABASE_URL=sqlite+aiosqlite:///./devtrack.db python scripts/generate-sample-data.py --apply

Every generated account uses the password given by --password.
"""

import os
import sys
import json
import random
import uuid
import asyncio
import argparse
from datetime import datetime, date, timedelta, timezone
from typing import Any

BACKEND_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend")


# ── Configuration ───────────────────────────────────────────

FIRST_NAMES = ["Alex", "Jordan", "Taylor", "Morgan", "Casey", "Riley", "Quinn", "Avery", "Sage", "River",
               "Kai", "Rowan", "Phoenix", "Skyler", "Dakota", "Reese", "Finley", "Harper", "Emery", "Blake"]
LAST_NAMES = ["Chen", "Patel", "Kim", "Santos", "Muller", "Okafor", "Tanaka", "Johansson", "Silva", "Kowalski",
              "Nguyen", "Andersen", "Dubois", "Rossi", "Yamamoto", "Petrov", "Larsson", "Fernandez", "Ali", "Park"]
DOMAIN = "devtrack.dev"

PROJECT_NAMES = ["Customer Portal", "Billing Revamp", "Mobile App", "Data Warehouse", "Internal Tools",
                 "Search Service", "Onboarding Flow", "Reporting Suite", "API Gateway", "Design System"]
TASK_VERBS = ["Implement", "Refactor", "Test", "Document", "Fix", "Review", "Design", "Optimise"]
TASK_OBJECTS = ["login form", "invoice export", "search index", "user settings", "audit trail",
                "notification emails", "dashboard charts", "file uploads", "role checks", "CSV import"]
COMMENTS = ["Looks good to me.", "Can we split this into smaller pieces?", "Blocked on the API change.",
            "Pushed a first draft.", "Needs another round of testing.", "Done, please review."]

STATUSES = ["NEW", "ASSIGNED", "IN_PROGRESS", "COMPLETED", "CANCELLED"]
STATUS_WEIGHTS = [1, 2, 3, 4, 0.5]
PRIORITIES = ["LOW", "MEDIUM", "HIGH", "CRITICAL"]
WORK_TYPES = ["DEVELOPMENT", "TESTING", "CODE_REVIEW", "DOCUMENTATION", "MEETING", "BUG_FIX", "RESEARCH", "OTHER"]


class SampleDataGenerator:
    """Generates a referentially consistent DevTrack dataset."""

    def __init__(self, seed: int = 42, now: datetime | None = None):
        self.seed = seed
        self.rng = random.Random(seed)
        self.now = now or datetime.now(timezone.utc)

    def _uuid(self) -> str:
        return str(uuid.UUID(int=self.rng.getrandbits(128), version=4))

    def _past(self, max_days: int) -> datetime:
        return self.now - timedelta(days=self.rng.randint(0, max_days), hours=self.rng.randint(0, 23))

    # ── Generators ──────────────────────────────────────────

    def generate_user(self, index: int, role: str) -> dict:
        first = self.rng.choice(FIRST_NAMES)
        last = self.rng.choice(LAST_NAMES)
        return {
            "id": self._uuid(),
            "username": f"{first.lower()}{last.lower()}{index}",
            "email": f"{first.lower()}.{last.lower()}{index}@{DOMAIN}",
            "role": role,
            "is_active": True,
            "created_at": self._past(180).isoformat(),
        }

    def generate_project(self, index: int, owner: dict) -> dict:
        return {
            "id": self._uuid(),
            "project_name": PROJECT_NAMES[index % len(PROJECT_NAMES)] + (f" {index // len(PROJECT_NAMES) + 1}" if index >= len(PROJECT_NAMES) else ""),
            "description": f"Demo project owned by {owner['username']}",
            "owner_manager_id": owner["id"],
            "created_at": self._past(120).isoformat(),
        }

    def generate_task(self, project: dict) -> dict:
        status = self.rng.choices(STATUSES, weights=STATUS_WEIGHTS)[0]
        start = (self.now - timedelta(days=self.rng.randint(5, 90))).date()
        end = start + timedelta(days=self.rng.randint(3, 45))
        created = datetime.combine(start, datetime.min.time(), tzinfo=timezone.utc)

        started_at = completed_at = None
        progress = 0
        if status in ("IN_PROGRESS", "COMPLETED"):
            started_at = created + timedelta(days=self.rng.randint(0, 3))
            progress = self.rng.randint(10, 90)
        if status == "COMPLETED":
            completed_at = min(self.now, started_at + timedelta(days=self.rng.randint(1, 30)))
            progress = 100

        return {
            "id": self._uuid(),
            "project_id": project["id"],
            "title": f"{self.rng.choice(TASK_VERBS)} {self.rng.choice(TASK_OBJECTS)}",
            "description": None,
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            "status": status,
            "priority": self.rng.choice(PRIORITIES),
            "progress_percentage": progress,
            "estimated_hours": float(self.rng.choice([2, 4, 6, 8, 12, 16, 24])),
            "started_at": started_at.isoformat() if started_at else None,
            "completed_at": completed_at.isoformat() if completed_at else None,
            "created_at": created.isoformat(),
        }

    def generate_work_log(self, task: dict, developer_id: str) -> dict:
        started = datetime.fromisoformat(task["started_at"])
        finished = datetime.fromisoformat(task["completed_at"]) if task["completed_at"] else self.now
        span_hours = max(1, int((finished - started).total_seconds() // 3600))
        return {
            "id": self._uuid(),
            "task_id": task["id"],
            "user_id": developer_id,
            "hours": round(self.rng.uniform(0.5, 6.0) * 2) / 2,
            "work_type": self.rng.choice(WORK_TYPES),
            "description": None,
            "logged_at": (started + timedelta(hours=self.rng.randint(0, span_hours))).isoformat(),
        }

    def generate_all(self, counts: dict[str, int] | None = None) -> dict[str, Any]:
        c = counts or {"admins": 1, "managers": 3, "developers": 8, "projects": 5, "tasks_per_project": 8}

        admins = [self.generate_user(i, "ADMIN") for i in range(c["admins"])]
        managers = [self.generate_user(100 + i, "MANAGER") for i in range(c["managers"])]
        developers = [self.generate_user(200 + i, "DEVELOPER") for i in range(c["developers"])]

        projects = [self.generate_project(i, managers[i % len(managers)]) for i in range(c["projects"])]

        tasks, assignments, work_logs, comments = [], [], [], []
        for project in projects:
            for _ in range(c["tasks_per_project"]):
                task = self.generate_task(project)
                tasks.append(task)
                if task["status"] == "NEW" or not developers:
                    continue

                team = self.rng.sample(developers, k=min(len(developers), self.rng.randint(1, 2)))
                for dev in team:
                    assignments.append({
                        "id": self._uuid(),
                        "task_id": task["id"],
                        "developer_id": dev["id"],
                        "assigned_at": task["created_at"],
                    })
                    if task["started_at"]:
                        for _ in range(self.rng.randint(1, 4)):
                            work_logs.append(self.generate_work_log(task, dev["id"]))

                for _ in range(self.rng.randint(0, 2)):
                    comments.append({
                        "id": self._uuid(),
                        "task_id": task["id"],
                        "user_id": self.rng.choice(team + [m for m in managers if m["id"] == project["owner_manager_id"]])["id"],
                        "content": self.rng.choice(COMMENTS),
                        "created_at": self._past(30).isoformat(),
                    })

        users = admins + managers + developers
        return {
            "generated_at": self.now.isoformat(),
            "generator": "DevTrack Sample Data Generator v1.0",
            "seed": self.seed,
            "counts": {
                "users": len(users),
                "projects": len(projects),
                "tasks": len(tasks),
                "task_assignments": len(assignments),
                "work_logs": len(work_logs),
                "comments": len(comments),
            },
            "data": {
                "users": users,
                "projects": projects,
                "tasks": tasks,
                "task_assignments": assignments,
                "work_logs": work_logs,
                "comments": comments,
            },
        }


# ── Database loader ─────────────────────────────────────────

def _parse_datetime(value):
    return datetime.fromisoformat(value) if value else None


def _parse_date(value):
    return date.fromisoformat(value) if value else None


async def apply_to_database(data: dict[str, Any], password: str) -> None:
    """Insert a generated dataset through the app's own models and session."""
    sys.path.insert(0, os.path.abspath(BACKEND_DIR))
    from auth import AuthService
    from database import init_db, get_db_context, close_db
    from models import (
        User, Project, Task, TaskAssignment, WorkLog, Comment,
        UserRole, TaskStatus, TaskPriority, WorkType,
    )

    await init_db()
    password_hash = AuthService.hash_password(password)
    rows = data["data"]
    async with get_db_context() as db:
        for u in rows["users"]:
            db.add(User(
                id=u["id"], username=u["username"], email=u["email"], password_hash=password_hash,
                role=UserRole(u["role"]), is_active=u["is_active"], created_at=_parse_datetime(u["created_at"]),
            ))
        for p in rows["projects"]:
            db.add(Project(
                id=p["id"], project_name=p["project_name"], description=p["description"],
                owner_manager_id=p["owner_manager_id"], created_at=_parse_datetime(p["created_at"]),
            ))
        for t in rows["tasks"]:
            db.add(Task(
                id=t["id"], project_id=t["project_id"], title=t["title"], description=t["description"],
                start_date=_parse_date(t["start_date"]), end_date=_parse_date(t["end_date"]),
                status=TaskStatus(t["status"]), priority=TaskPriority(t["priority"]),
                progress_percentage=t["progress_percentage"], estimated_hours=t["estimated_hours"],
                started_at=_parse_datetime(t["started_at"]), completed_at=_parse_datetime(t["completed_at"]),
                created_at=_parse_datetime(t["created_at"]),
            ))
        for a in rows["task_assignments"]:
            db.add(TaskAssignment(
                id=a["id"], task_id=a["task_id"], developer_id=a["developer_id"],
                assigned_at=_parse_datetime(a["assigned_at"]),
            ))
        for w in rows["work_logs"]:
            db.add(WorkLog(
                id=w["id"], task_id=w["task_id"], user_id=w["user_id"], hours=w["hours"],
                work_type=WorkType(w["work_type"]), description=w["description"],
                logged_at=_parse_datetime(w["logged_at"]),
            ))
        for cm in rows["comments"]:
            db.add(Comment(
                id=cm["id"], task_id=cm["task_id"], user_id=cm["user_id"], content=cm["content"],
                created_at=_parse_datetime(cm["created_at"]),
            ))
    await close_db()


# ── CLI ─────────────────────────────────────────────────────

def main(argv=None):
    parser = argparse.ArgumentParser(description="DevTrack Sample Data Generator")
    parser.add_argument("--admins", type=int, default=1, help="Number of admins")
    parser.add_argument("--managers", type=int, default=3, help="Number of managers")
    parser.add_argument("--developers", type=int, default=8, help="Number of developers")
    parser.add_argument("--projects", type=int, default=5, help="Number of projects")
    parser.add_argument("--tasks", type=int, default=8, help="Tasks per project")
    parser.add_argument("--output", type=str, default="sample-data.json", help="Output file")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--apply", action="store_true", help="Insert into DATABASE_URL instead of writing JSON")
    parser.add_argument("--password", type=str, default="DevTrack123", help="Password for every demo account")
    args = parser.parse_args(argv)

    if args.managers < 1:
        parser.error("--managers must be at least 1 (projects need an owner)")

    generator = SampleDataGenerator(seed=args.seed)
    data = generator.generate_all({
        "admins": args.admins,
        "managers": args.managers,
        "developers": args.developers,
        "projects": args.projects,
        "tasks_per_project": args.tasks,
    })
    counts = data["counts"]

    if args.apply:
        asyncio.run(apply_to_database(data, args.password))
        print("✅ Sample data inserted into the configured database")
    else:
        with open(args.output, "w") as f:
            json.dump(data, f, indent=2, default=str)
        print(f"✅ Sample data generated: {args.output}")

    for name, count in counts.items():
        print(f"   {name.replace('_', ' ').title()}: {count}")
    print(f"   Total Records: {sum(counts.values())}")
    return data


if __name__ == "__main__":
    main()
