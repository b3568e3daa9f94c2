#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
import tempfile
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient


@dataclass
class Scenario:
  name: str
  message: str
  expected_entity: str
  expected_intent: str


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  # Smoke runs hit the live model but never touch the real database.
  scratch_dir = tempfile.mkdtemp(prefix="symptomsync-smoke-")
  os.environ["SYMPTOMSYNC_DB_PATH"] = str(Path(scratch_dir) / "smoke.sqlite")

  backend_module = importlib.import_module("main")
  backend_module = importlib.reload(backend_module)

  headers = {"Authorization": "Bearer smoke-user"}
  scenarios = [
    Scenario(
      name="Appointment Create",
      message="Add a dentist appointment tomorrow at 3pm.",
      expected_entity="appointment",
      expected_intent="create",
    ),
    Scenario(
      name="Medication Create",
      message="Remind me to take 200mg ibuprofen every day at 8am.",
      expected_entity="medication",
      expected_intent="create",
    ),
    Scenario(
      name="Health Log Create",
      message="Log a headache, severity 6, today 2pm.",
      expected_entity="health_log",
      expected_intent="create",
    ),
    Scenario(
      name="Appointment Delete",
      message="Cancel my dentist appointment.",
      expected_entity="appointment",
      expected_intent="delete",
    ),
  ]

  results: list[dict[str, Any]] = []

  with TestClient(backend_module.app) as client:
    for scenario in scenarios:
      chat_response = client.post("/chat", headers=headers, json={"message": scenario.message})
      scenario_result: dict[str, Any] = {
        "name": scenario.name,
        "expected": f"{scenario.expected_entity}/{scenario.expected_intent}",
        "chat_status_code": chat_response.status_code,
      }
      if chat_response.status_code != 200:
        scenario_result["pass"] = False
        scenario_result["error"] = f"/chat returned {chat_response.status_code}"
        results.append(scenario_result)
        continue

      body = chat_response.json()
      scenario_result["reply_preview"] = (body.get("reply") or "")[:240]
      pending = body.get("pending_action")
      scenario_result["pending_action"] = pending
      if body.get("error"):
        scenario_result["pass"] = False
        scenario_result["error"] = body["error"]
        results.append(scenario_result)
        continue
      if not isinstance(pending, dict):
        scenario_result["pass"] = False
        scenario_result["error"] = "No pending action staged."
        results.append(scenario_result)
        continue

      actual = f"{pending.get('entity')}/{pending.get('intent')}"
      scenario_result["actual"] = actual
      if actual != scenario_result["expected"]:
        scenario_result["pass"] = False
        scenario_result["error"] = f"Expected {scenario_result['expected']}, got {actual}"
        client.post("/chat/pending/dismiss", headers=headers)
        results.append(scenario_result)
        continue

      apply_response = client.post("/chat/pending/apply", headers=headers)
      apply_body = apply_response.json()
      scenario_result["apply_body"] = apply_body
      apply_status = (apply_body.get("result") or {}).get("status")
      scenario_result["apply_status"] = apply_status
      scenario_result["pass"] = apply_response.status_code == 200 and apply_status == "applied"
      if not scenario_result["pass"]:
        scenario_result["error"] = (apply_body.get("result") or {}).get("message") or "Apply was not accepted."
        client.post("/chat/pending/dismiss", headers=headers)
      results.append(scenario_result)

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()

  report_lines = [
    "# Chat Apply Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- SYMPTOMSYNC_GEMINI_MODELS: `{os.getenv('SYMPTOMSYNC_GEMINI_MODELS')}`",
    f"- Total scenarios: `{len(results)}`",
    f"- Passed: `{passed}`",
    f"- Failed: `{failed}`",
    "",
    "## Scenario Results",
    "",
  ]
  for item in results:
    status = "PASS" if item.get("pass") else "FAIL"
    report_lines.append(f"### {status} - {item['name']}")
    report_lines.append(f"- Expected action: `{item.get('expected')}`")
    report_lines.append(f"- Staged action: `{item.get('actual')}`")
    report_lines.append(f"- Apply status: `{item.get('apply_status')}`")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    if item.get("reply_preview"):
      report_lines.append(f"- Reply preview: `{item['reply_preview']}`")
    report_lines.append("- Pending action payload:")
    report_lines.append("```json")
    report_lines.append(json.dumps(item.get("pending_action"), indent=2, ensure_ascii=True))
    report_lines.append("```")
    report_lines.append("")

  report_path = repo_root / "CHAT_APPLY_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())
