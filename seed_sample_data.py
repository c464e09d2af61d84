"""
Seed a ProjectFlow database with a demo account and sample records.

Creates (or migrates) the database, registers a demo user and fills it with
clients, projects, tasks and subtasks, budgets, ledger entries and code
snippets so every page of the dashboard has something to show. Dates are
relative to today.

Usage:
    python seed_sample_data.py
    python seed_sample_data.py --db /path/to/projectflow.sqlite
    python seed_sample_data.py --email demo@example.com --password demo123
    python seed_sample_data.py --dry-run
"""

import argparse
import logging
import sqlite3
import sys
from datetime import date, timedelta
from pathlib import Path

from fastapi import HTTPException

from api.auth import create_user
from api.models import ClientIn, ProjectFinanceIn, ProjectIn, SnippetIn, TaskIn, TransactionIn
from api.routes.clients import create_client
from api.routes.finance import add_transaction, upsert_project_finance
from api.routes.projects import create_project
from api.routes.snippets import create_snippet
from api.routes.tasks import create_task
from schema_design import create_database

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = Path("projectflow.sqlite")
DEFAULT_EMAIL = "demo@projectflow.local"
DEFAULT_PASSWORD = "demo1234"

SAMPLE_CLIENTS = [
    {"name": "Acme Inc.", "company": "Acme Incorporated", "email": "contact@acmeinc.com",
     "phone": "+1 (555) 123-4567", "status": "active"},
    {"name": "TechGlobe", "company": "TechGlobe Solutions", "email": "info@techglobe.com",
     "phone": "+1 (555) 987-6543", "status": "active"},
    {"name": "Brand Masters", "company": "Brand Masters Agency", "email": "hello@brandmasters.co",
     "phone": "+1 (555) 345-6789", "status": "active"},
    {"name": "Shop Right", "company": "Shop Right Stores", "email": "support@shopright.com",
     "phone": "+1 (555) 456-7890", "status": "active"},
    {"name": "Finance Pro", "company": "Finance Pro Ltd", "email": "contact@financepro.com",
     "phone": "+1 (555) 567-8901", "status": "inactive"},
]

# (name, description, status, client name, start offset days, end offset days, budget)
SAMPLE_PROJECTS = [
    ("Website Redesign",
     "Complete overhaul of the company website with new branding and improved UX/UI.",
     "in_progress", "Acme Inc.", -30, 15, 12000),
    ("Mobile App Development",
     "Building a new mobile application for both iOS and Android platforms.",
     "in_progress", "TechGlobe", -20, 45, 30000),
    ("Marketing Campaign",
     "Q2 marketing campaign for new product launch, including social media and email marketing.",
     "on_hold", "Brand Masters", -10, 5, 8000),
    ("Server Migration",
     "Migrating legacy server infrastructure to the cloud for improved scalability.",
     "completed", "Acme Inc.", -60, -5, 15000),
    ("E-commerce Integration",
     "Integrating payment gateways and shopping cart functionality into the client's website.",
     "in_progress", "Shop Right", -25, 3, 10000),
    ("Annual Report Design",
     "Designing and formatting the annual financial and business report for stakeholders.",
     "planning", "Finance Pro", 0, 21, 5000),
]

# (project, title, description, status, priority, due offset, assignee, subtasks [(title, done)])
SAMPLE_TASKS = [
    ("Website Redesign", "Homepage Design",
     "Create a new responsive homepage design based on brand guidelines.",
     "done", "high", -5, "John Doe",
     [("Wireframes", True), ("Mockups", True), ("Mobile version", True)]),
    ("Website Redesign", "About Page Content",
     "Write and format content for the About Us page including company history and team profiles.",
     "in_progress", "medium", 2, "Sarah Johnson",
     [("Company history section", True), ("Team profiles", True), ("Mission statement", False)]),
    ("Website Redesign", "Contact Form Implementation",
     "Implement form validation and email functionality for the contact page.",
     "in_progress", "medium", 7, "Mike Wilson",
     [("Form design", True), ("Form validation", False), ("Email service integration", False)]),
    ("Mobile App Development", "User Authentication",
     "Implement secure user authentication including login, registration, and password reset.",
     "in_progress", "high", 10, "Jane Smith",
     [("Login functionality", True), ("Registration form", True), ("Password reset", False),
      ("Email verification", False)]),
    ("Mobile App Development", "Product Listing Page",
     "Design and implement the product listing page with filtering and sorting options.",
     "to_do", "medium", 15, "Robert Brown",
     [("Grid layout design", False), ("Filter components", False), ("Sorting functionality", False)]),
    ("Marketing Campaign", "Email Campaign Setup",
     "Set up email templates and subscriber lists for the product launch campaign.",
     "blocked", "high", 3, "Lisa Chen",
     [("Email template design", False), ("Subscriber list segmentation", True),
      ("A/B testing setup", False)]),
]

# (project, type, amount, description, date offset)
SAMPLE_TRANSACTIONS = [
    ("Website Redesign", "income", 4000.00, "Deposit: website redesign", -25),
    ("Website Redesign", "expense", 650.00, "Stock photography licences", -12),
    ("Mobile App Development", "income", 7500.00, "Milestone 1 payment", -3),
    ("Mobile App Development", "expense", 1200.00, "Device testing lab", -2),
    ("Server Migration", "income", 15000.00, "Final invoice: server migration", -5),
    ("Server Migration", "expense", 2300.00, "Cloud hosting, first quarter", -6),
    ("E-commerce Integration", "income", 2500.00, "Payment gateway setup fee", -1),
]

SAMPLE_SNIPPETS = [
    ("Debounce helper", "javascript",
     "function debounce(fn, wait) {\n  let t;\n  return (...args) => {\n"
     "    clearTimeout(t);\n    t = setTimeout(() => fn(...args), wait);\n  };\n}\n",
     "Website Redesign"),
    ("Read CSV into dicts", "python",
     "import csv\n\nwith open(path, newline=\"\") as fh:\n    rows = list(csv.DictReader(fh))\n",
     None),
    ("Overdue tasks", "sql",
     "SELECT title, due_date FROM tasks\nWHERE status != 'done' AND due_date < date('now')\n"
     "ORDER BY due_date;\n",
     "Mobile App Development"),
]


def planned_counts() -> dict[str, int]:
    """Rows seed() would create for the sample data."""
    return {
        "users": 1,
        "clients": len(SAMPLE_CLIENTS),
        "projects": len(SAMPLE_PROJECTS),
        "tasks": sum(1 + len(t[7]) for t in SAMPLE_TASKS),
        "budgets": len(SAMPLE_PROJECTS),
        "transactions": len(SAMPLE_TRANSACTIONS),
        "snippets": len(SAMPLE_SNIPPETS),
    }


def seed(conn: sqlite3.Connection, email: str = DEFAULT_EMAIL,
         password: str = DEFAULT_PASSWORD, today: date | None = None) -> dict[str, int]:
    """Create the demo user and sample records; return counts per kind.

    Raises:
        HTTPException: 409 if *email* is already registered.
    """
    today = today or date.today()

    def day(offset: int) -> str:
        return (today + timedelta(days=offset)).isoformat()

    user = create_user(conn, email, password, "Demo User")
    owner = user["id"]
    counts = dict.fromkeys(planned_counts(), 0)
    counts["users"] = 1

    client_ids: dict[str, str] = {}
    for data in SAMPLE_CLIENTS:
        client = create_client(conn, owner, ClientIn(**data))
        client_ids[client["name"]] = client["id"]
        counts["clients"] += 1

    project_ids: dict[str, str] = {}
    for name, description, status, client, start, end, budget in SAMPLE_PROJECTS:
        project = create_project(conn, owner, ProjectIn(
            name=name, description=description, status=status,
            start_date=day(start), end_date=day(end), client_id=client_ids[client],
        ))
        project_ids[name] = project["id"]
        counts["projects"] += 1
        upsert_project_finance(conn, owner, project["id"], ProjectFinanceIn(
            budget=budget, received=0, spent=0,
        ))
        counts["budgets"] += 1

    for project, title, description, status, priority, due, assignee, subtasks in SAMPLE_TASKS:
        parent = create_task(conn, owner, TaskIn(
            project_id=project_ids[project], title=title, description=description,
            status=status, priority=priority, due_date=day(due), assignee=assignee,
        ))
        counts["tasks"] += 1
        for sub_title, done in subtasks:
            create_task(conn, owner, TaskIn(
                project_id=project_ids[project], title=sub_title,
                status="done" if done else "to_do", priority=priority,
                assignee=assignee, parent_task_id=parent["id"],
            ))
            counts["tasks"] += 1

    for project, txn_type, amount, description, offset in SAMPLE_TRANSACTIONS:
        add_transaction(conn, owner, TransactionIn(
            project_id=project_ids[project], type=txn_type, amount=amount,
            description=description, date=day(offset),
        ))
        counts["transactions"] += 1

    for title, language, code, project in SAMPLE_SNIPPETS:
        create_snippet(conn, owner, SnippetIn(
            title=title, language=language, code=code,
            project_id=project_ids[project] if project else None,
        ))
        counts["snippets"] += 1

    logger.info("seeded demo data for %s: %s", email, counts)
    return counts


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Seed a ProjectFlow database with a demo user and sample data."
    )
    parser.add_argument("--db", type=Path, default=DEFAULT_DB_PATH,
                        help="Path to the SQLite database (default: projectflow.sqlite)")
    parser.add_argument("--email", default=DEFAULT_EMAIL,
                        help=f"Demo account email (default: {DEFAULT_EMAIL})")
    parser.add_argument("--password", default=DEFAULT_PASSWORD,
                        help="Demo account password (default: demo1234)")
    parser.add_argument("--dry-run", action="store_true",
                        help="Print what would be created without touching the database")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    if args.dry_run:
        for kind, count in planned_counts().items():
            print(f"  Would create {count:>3} {kind}")
        return 0

    conn = create_database(args.db)
    try:
        counts = seed(conn, args.email, args.password)
    except HTTPException as exc:
        print(f"Error: {exc.detail}", file=sys.stderr)
        return 1
    finally:
        conn.close()

    for kind, count in counts.items():
        print(f"  Created {count:>3} {kind}")
    print(f"\nSign in at /auth with {args.email} / {args.password}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
