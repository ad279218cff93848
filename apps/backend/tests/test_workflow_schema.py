import sys
import unittest
from pathlib import Path

from pydantic import ValidationError

sys.path.append(str(Path(__file__).resolve().parents[1] / "src"))

from flowai.workflow.schema import WizardStep, Workflow, WorkflowPlan, WorkflowStatus
from flowai.workflow.wizard import apply_plan, apply_refinement, apply_script, current_step

from fakes import INVOICE_PLAN


class WorkflowPlanTests(unittest.TestCase):
    def test_rejects_duplicate_step_ids(self):
        with self.assertRaises(ValidationError):
            WorkflowPlan.model_validate(
                {
                    "name": "Dupes",
                    "description": "Two steps share an id",
                    "steps": [
                        {"id": "1", "action": "Read Sheet", "service": "Sheets"},
                        {"id": "1", "action": "Send mail", "service": "Gmail"},
                    ],
                }
            )

    def test_rejects_empty_steps_and_non_string_ids(self):
        with self.assertRaises(ValidationError):
            WorkflowPlan.model_validate({"name": "Empty", "description": "", "steps": []})
        with self.assertRaises(ValidationError):
            WorkflowPlan.model_validate(
                {"name": "Ints", "description": "", "steps": [{"id": 1, "action": "x", "service": "Gmail"}]}
            )

    def test_plan_is_immutable(self):
        plan = WorkflowPlan.model_validate(INVOICE_PLAN)
        with self.assertRaises(ValidationError):
            plan.name = "Renamed"
        with self.assertRaises(AttributeError):
            plan.steps.append(plan.steps[0])
        self.assertEqual(len(plan.steps), 1)


class WorkflowRecordTests(unittest.TestCase):
    def test_new_workflow_defaults(self):
        wf = Workflow()
        self.assertTrue(wf.id)
        self.assertEqual(wf.status, WorkflowStatus.DRAFT)
        self.assertIsNone(wf.plan)
        self.assertIsNone(wf.script)
        self.assertGreater(wf.created_at, 0)

    def test_serializes_as_flat_camel_case_record(self):
        wf = Workflow(id="wf-1", created_at=1700000000000)
        payload = wf.model_dump(mode="json", by_alias=True)
        self.assertEqual(payload["createdAt"], 1700000000000)
        self.assertEqual(payload["status"], "Draft")
        self.assertEqual(Workflow.model_validate(payload), wf)


class CurrentStepTests(unittest.TestCase):
    def setUp(self) -> None:
        self.plan = WorkflowPlan.model_validate(INVOICE_PLAN)

    def test_step_derives_only_from_plan_and_script(self):
        self.assertEqual(current_step(Workflow()), WizardStep.DESCRIBE)
        self.assertEqual(current_step(Workflow(script="orphan")), WizardStep.DEPLOY)
        self.assertEqual(current_step(Workflow(plan=self.plan)), WizardStep.REVIEW)
        self.assertEqual(current_step(Workflow(plan=self.plan, script="code")), WizardStep.DEPLOY)
        # name, prompt and status do not matter
        self.assertEqual(
            current_step(Workflow(name="x", prompt="y", status=WorkflowStatus.GENERATED)),
            WizardStep.DESCRIBE,
        )

    def test_steps_are_ordered(self):
        self.assertLess(WizardStep.DESCRIBE, WizardStep.REVIEW)
        self.assertLess(WizardStep.REVIEW, WizardStep.DEPLOY)

    def test_transitions_return_copies_and_keep_status_invariant(self):
        original = Workflow()
        planned = apply_plan(original, self.plan, "notify me about invoices")
        self.assertIsNone(original.plan)
        self.assertEqual(planned.name, "Invoice Notifier")
        self.assertEqual(planned.status, WorkflowStatus.DRAFT)

        generated = apply_script(planned, "function main() {}")
        self.assertEqual(generated.status, WorkflowStatus.GENERATED)
        self.assertIsNone(planned.script)

        refined = apply_refinement(generated)
        self.assertIsNone(refined.script)
        self.assertIsNone(refined.plan)
        self.assertEqual(refined.status, WorkflowStatus.DRAFT)
        self.assertEqual(refined.prompt, "notify me about invoices")


if __name__ == "__main__":
    unittest.main()
