#!/usr/bin/env python3
from __future__ import annotations

import importlib
import json
import os
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from fastapi.testclient import TestClient


@dataclass
class Scenario:
  name: str
  language: str
  description: str
  chat_message: str


def urgency_ok(body: dict[str, Any]) -> bool:
  return body.get("urgency_level") in {"high", "medium", "low"}


def run() -> int:
  repo_root = Path(__file__).resolve().parents[1]
  backend_dir = repo_root / "backend"
  if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

  backend_module = importlib.import_module("main")
  backend_module = importlib.reload(backend_module)

  if not backend_module.container.settings.api_key:
    print("GEMINI_API_KEY (or API_KEY) is not set; the smoke run needs a real key.")
    return 2

  scenarios = [
    Scenario(
      name="Text-only fever (English)",
      language="en",
      description="fever and cough, 3 days",
      chat_message="Can I take paracetamol for the fever?",
    ),
    Scenario(
      name="Text-only headache (Spanish)",
      language="es",
      description="dolor de cabeza fuerte desde ayer, con náuseas",
      chat_message="¿Qué puedo hacer en casa mientras tanto?",
    ),
  ]

  results: list[dict[str, Any]] = []

  with TestClient(backend_module.app) as client:
    for scenario in scenarios:
      client.post("/analysis/reset")
      client.put("/language", json={"language": scenario.language})

      analysis_response = client.post("/analysis", json={"description": scenario.description})
      scenario_result: dict[str, Any] = {
        "name": scenario.name,
        "language": scenario.language,
        "analysis_status_code": analysis_response.status_code,
      }

      analysis_body: dict[str, Any] = {}
      try:
        analysis_body = analysis_response.json()
      except Exception:
        analysis_body = {"raw": analysis_response.text[:500]}
      scenario_result["analysis_body"] = analysis_body

      if analysis_response.status_code != 200 or analysis_body.get("status") != "complete":
        scenario_result["pass"] = False
        scenario_result["error"] = f"/analysis returned {analysis_response.status_code}"
        results.append(scenario_result)
        continue

      result = analysis_body.get("result") or {}
      scenario_result["urgency"] = result.get("urgency")
      scenario_result["specialist"] = result.get("recommendedSpecialist")
      scenario_result["diagnosis_count"] = len(result.get("diagnoses") or [])

      chat_response = client.post("/chat/messages", json={"message": scenario.chat_message})
      scenario_result["chat_status_code"] = chat_response.status_code
      messages = chat_response.json().get("messages", []) if chat_response.status_code == 200 else []
      reply = messages[-1]["text"] if messages and messages[-1].get("role") == "model" else ""
      scenario_result["chat_reply_preview"] = reply[:240]

      # Smoke success criterion: a schema-valid result with a known urgency and a non-empty chat reply.
      scenario_result["pass"] = (
        urgency_ok(analysis_body)
        and scenario_result["diagnosis_count"] > 0
        and chat_response.status_code == 200
        and bool(reply.strip())
      )
      if not scenario_result["pass"]:
        scenario_result["error"] = "Analysis or follow-up chat did not produce the expected shape."

      results.append(scenario_result)

  passed = sum(1 for item in results if item.get("pass"))
  failed = len(results) - passed
  timestamp = datetime.now(timezone.utc).isoformat()
  settings = backend_module.container.settings

  report_lines = [
    "# HealthVibe E2E Smoke Report",
    "",
    f"- Timestamp (UTC): `{timestamp}`",
    f"- Analysis model: `{settings.analysis_model}`",
    f"- Chat model: `{settings.chat_model}`",
    f"- HEALTHVIBE_GEMINI_BASE_URL: `{os.getenv('HEALTHVIBE_GEMINI_BASE_URL') or settings.base_url}`",
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
    report_lines.append(f"- Language: `{item.get('language')}`")
    report_lines.append(f"- Analysis status code: `{item.get('analysis_status_code')}`")
    report_lines.append(f"- Urgency: `{item.get('urgency')}`")
    report_lines.append(f"- Recommended specialist: `{item.get('specialist')}`")
    report_lines.append(f"- Diagnoses: `{item.get('diagnosis_count')}`")
    report_lines.append(f"- Chat status code: `{item.get('chat_status_code')}`")
    if item.get("error"):
      report_lines.append(f"- Error: `{item['error']}`")
    preview = item.get("chat_reply_preview") or ""
    if preview:
      report_lines.append(f"- Chat preview: `{preview}`")
    report_lines.append("- Analysis response payload:")
    report_lines.append("```json")
    report_lines.append(json.dumps(item.get("analysis_body"), indent=2, ensure_ascii=False))
    report_lines.append("```")
    report_lines.append("")

  report_path = repo_root / "HEALTHVIBE_E2E_SMOKE_REPORT.md"
  report_path.write_text("\n".join(report_lines), encoding="utf-8")
  print(f"Wrote report: {report_path}")
  print(f"Passed {passed}/{len(results)} scenarios.")

  return 0 if failed == 0 else 1


if __name__ == "__main__":
  raise SystemExit(run())
