"""
Exporter: read-only projections of the ledger and preference store into
preference-training formats.

Two file formats are produced:
- a JSON document per scope: {persona, metadata, feedback, preference_pairs, learned_weights}
- DPO lines: {prompt, chosen, rejected, persona, entity_id}

Ordering is stable (creation time, then id; weights by category, value), so
exporting the same state twice yields identical output.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .ledger import FeedbackLedger, FeedbackRecord, PairRecord
from .personas import PersonaRegistry
from .preferences import PreferenceStore


def _label(entity_id: str, name: str) -> str:
    return f"{name} ({entity_id})" if name else entity_id


def _datapoint_labels(record: FeedbackRecord) -> List[str]:
    return [f"{category}:{value}" for category, value in record.datapoints]


class Exporter:
    def __init__(self, ledger: FeedbackLedger, preferences: PreferenceStore, personas: PersonaRegistry):
        self.ledger = ledger
        self.preferences = preferences
        self.personas = personas

    def _persona_name(self, scope: str) -> str:
        persona = self.personas.get(scope)
        return persona.name if persona is not None else scope

    def _pair_prompt(self, scope: str, pair: PairRecord) -> str:
        # candidates are listed alphabetically so the prompt does not leak the answer
        first, second = sorted(
            [_label(pair.chosen_entity_id, pair.chosen_name), _label(pair.rejected_entity_id, pair.rejected_name)]
        )
        return f"Which candidate is a better fit for {self._persona_name(scope)}: {first} or {second}?"

    def export_preference_pairs(self, scope: str) -> List[Dict[str, Any]]:
        rows = []
        for pair in self.ledger.list_pairs(scope):
            chosen = f"{_label(pair.chosen_entity_id, pair.chosen_name)} is the better fit."
            if pair.reason:
                chosen = f"{chosen} {pair.reason}"
            rows.append(
                {
                    "prompt": self._pair_prompt(scope, pair),
                    "chosen": chosen,
                    "rejected": f"{_label(pair.rejected_entity_id, pair.rejected_name)} is the better fit.",
                    "provenance": {
                        "pair_id": pair.id,
                        "scope": pair.scope,
                        "chosen_entity_id": pair.chosen_entity_id,
                        "rejected_entity_id": pair.rejected_entity_id,
                        "reason": pair.reason,
                        "created_at": pair.created_at.isoformat(),
                    },
                }
            )
        return rows

    def export_weights(self, scope: str) -> List[Dict[str, Any]]:
        return [view.to_dict() for view in self.preferences.weights(scope)]

    def export_feedback(self, scope: str) -> List[Dict[str, Any]]:
        return [
            {
                "entity_id": r.entity_id,
                "entity_type": r.entity_type,
                "display_name": r.display_name,
                "action": r.action,
                "tags": list(r.tags),
                "datapoints": [list(p) for p in r.datapoints],
                "note": r.note,
                "prior_score": r.prior_score,
                "user_agreed": r.user_agreed,
                "created_at": r.created_at.isoformat(),
            }
            for r in self.ledger.list_by_scope(scope)
        ]

    def export_document(self, scope: str, exported_at: Optional[str] = None) -> Dict[str, Any]:
        persona = self.personas.get(scope)
        feedback = self.export_feedback(scope)
        pairs = self.export_preference_pairs(scope)
        weights = self.export_weights(scope)

        metadata: Dict[str, Any] = {
            "feedback_count": len(feedback),
            "pairs_count": len(pairs),
            "weights_count": len(weights),
        }
        if exported_at:
            metadata["exported_at"] = exported_at

        return {
            "persona": persona.to_dict() if persona is not None else {"id": scope},
            "metadata": metadata,
            "feedback": feedback,
            "preference_pairs": pairs,
            "learned_weights": weights,
        }

    def export_dpo(self, scope: str) -> List[Dict[str, Any]]:
        """DPO lines from feedback records, then from explicit pairs."""
        persona_name = self._persona_name(scope)
        lines = []
        for record in self.ledger.list_by_scope(scope):
            signals = ", ".join(_datapoint_labels(record))
            note = f" {record.note}" if record.note else ""
            if record.action == "like":
                chosen = f"This candidate is a good fit. Key signals: {signals}.{note}"
                rejected = "This candidate is not a good fit."
            else:
                chosen = f"This candidate is not a good fit. Concerns: {signals}.{note}"
                rejected = "This candidate is a good fit."
            lines.append(
                {
                    "prompt": f"Evaluate this candidate for {persona_name}:\nDatapoints: {signals}",
                    "chosen": chosen,
                    "rejected": rejected,
                    "persona": scope,
                    "entity_id": record.entity_id,
                }
            )

        for row in self.export_preference_pairs(scope):
            lines.append(
                {
                    "prompt": row["prompt"],
                    "chosen": row["chosen"],
                    "rejected": row["rejected"],
                    "persona": scope,
                    "entity_id": row["provenance"]["chosen_entity_id"],
                }
            )
        return lines


def write_json(path: Path, document: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(document, f, indent=2, ensure_ascii=False)


def write_jsonl(path: Path, rows: Iterable[Dict[str, Any]]) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    count = 0
    with path.open("w", encoding="utf-8") as f:
        for row in rows:
            f.write(json.dumps(row, ensure_ascii=False))
            f.write("\n")
            count += 1
    return count
