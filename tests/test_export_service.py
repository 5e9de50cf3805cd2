import os
import sys
import json
import unittest

sys.path.append(os.path.dirname(os.path.dirname(__file__)))
from export_service import ExportService
from models import ExportOptions, Workout


def bench_press() -> dict:
    return {"id": "ex1", "name": "Bench Press", "muscleGroups": ["chest", "triceps"], "equipment": "barbell"}


def sample_workouts() -> list:
    return [
        Workout.model_validate(
            {
                "id": "w1",
                "name": "Push Day",
                "date": "2024-01-15T10:00:00Z",
                "duration": 60,
                "notes": "Great session",
                "isCompleted": True,
                "tags": ["strength", "push"],
                "exercises": [
                    {
                        "id": "we1",
                        "exerciseId": "ex1",
                        "exercise": bench_press(),
                        "notes": "Felt strong",
                        "sets": [
                            {"id": "s1", "reps": 10, "weight": 135, "restTime": 90},
                            {"id": "s2", "reps": 8, "weight": 145, "restTime": 90},
                            {"id": "s3", "reps": 6, "weight": 155, "restTime": 120},
                        ],
                    },
                    {
                        "id": "we2",
                        "exerciseId": "ex2",
                        "exercise": {"id": "ex2", "name": "Overhead Press", "muscleGroups": ["shoulders"]},
                        "sets": [
                            {"id": "s4", "reps": 8, "weight": 95, "restTime": 90},
                            {"id": "s5", "reps": 6, "weight": 105, "restTime": 90},
                        ],
                    },
                ],
            }
        ),
        Workout.model_validate(
            {
                "id": "w2",
                "name": "Pull Day",
                "date": "2024-01-17T14:30:00Z",
                "duration": 75,
                "isCompleted": True,
                "tags": ["strength", "pull"],
                "exercises": [
                    {
                        "id": "we3",
                        "exerciseId": "ex3",
                        "exercise": {"id": "ex3", "name": "Deadlift", "muscleGroups": ["back"]},
                        "sets": [
                            {"id": "s6", "reps": 5, "weight": 225, "restTime": 180},
                            {"id": "s7", "reps": 5, "weight": 235, "restTime": 180},
                            {"id": "s8", "reps": 3, "weight": 245, "restTime": 180},
                        ],
                    }
                ],
            }
        ),
    ]


class JsonExportTest(unittest.TestCase):
    def test_export_to_json(self) -> None:
        data = json.loads(ExportService.export_workouts_to_json(sample_workouts()))
        self.assertEqual(len(data), 2)
        self.assertEqual(data[0]["name"], "Push Day")
        self.assertEqual(len(data[0]["exercises"]), 2)
        self.assertEqual(data[0]["exercises"][0]["sets"][0]["restTime"], 90)
        self.assertEqual(data[1]["name"], "Pull Day")

    def test_round_trip(self) -> None:
        workouts = sample_workouts()
        data = json.loads(ExportService.export_workouts_to_json(workouts))
        self.assertEqual([Workout.model_validate(item) for item in data], workouts)

    def test_empty_list(self) -> None:
        self.assertEqual(ExportService.export_workouts_to_json([]), "[]")

    def test_mappings_written_as_given(self) -> None:
        text = ExportService.export_workouts_to_json([{"id": "x", "name": None}])
        self.assertEqual(json.loads(text), [{"id": "x", "name": None}])

    def test_cyclic_data_raises(self) -> None:
        record: dict = {"id": "w1", "name": "Loop"}
        record["self"] = record
        with self.assertRaises(ValueError):
            ExportService.export_workouts_to_json([record])


class CsvExportTest(unittest.TestCase):
    def test_header_and_rows(self) -> None:
        lines = ExportService.export_workouts_to_csv(sample_workouts()).split("\n")
        self.assertEqual(lines[0], "Date,Workout,Exercise,Set,Reps,Weight,Rest")
        self.assertEqual(lines[1], "2024-01-15,Push Day,Bench Press,1,10,135,90")
        self.assertEqual(lines[4], "2024-01-15,Push Day,Overhead Press,1,8,95,90")
        self.assertEqual(lines[-1], "2024-01-17,Pull Day,Deadlift,3,3,245,180")
        self.assertEqual(len(lines), 9)

    def test_missing_values_are_empty(self) -> None:
        workout = sample_workouts()[0]
        workout.exercises[0].sets[0].weight = None
        workout.exercises[0].sets[1].rest_time = None
        lines = ExportService.export_workouts_to_csv([workout]).split("\n")
        self.assertEqual(lines[1], "2024-01-15,Push Day,Bench Press,1,10,,90")
        self.assertTrue(lines[2].endswith(",145,"))

    def test_fields_with_commas_are_quoted(self) -> None:
        workout = sample_workouts()[0]
        workout.name = "Push, Heavy"
        lines = ExportService.export_workouts_to_csv([workout]).split("\n")
        self.assertTrue(lines[1].startswith('2024-01-15,"Push, Heavy",Bench Press'))

    def test_header_only(self) -> None:
        workout = sample_workouts()[0]
        workout.exercises = []
        header = "Date,Workout,Exercise,Set,Reps,Weight,Rest"
        self.assertEqual(ExportService.export_workouts_to_csv([workout]), header)
        self.assertEqual(ExportService.export_workouts_to_csv([]), header)

    def test_fractional_weight(self) -> None:
        workout = sample_workouts()[0]
        workout.exercises[0].sets[0].weight = 62.5
        lines = ExportService.export_workouts_to_csv([workout]).split("\n")
        self.assertEqual(lines[1], "2024-01-15,Push Day,Bench Press,1,10,62.5,90")


class ReportTest(unittest.TestCase):
    def test_format_workout_data(self) -> None:
        summary = ExportService.format_workout_data(sample_workouts()[0])
        self.assertEqual(summary.total_volume, 4830)
        self.assertEqual(summary.total_sets, 5)
        self.assertEqual(summary.heaviest_set.exercise, "Bench Press")
        self.assertEqual(summary.heaviest_set.weight, 155)
        self.assertEqual(summary.heaviest_set.reps, 6)

    def test_heaviest_set_tie_keeps_first(self) -> None:
        workout = sample_workouts()[0]
        workout.exercises[0].sets[2].weight = 100
        workout.exercises[1].sets[0].weight = 155
        workout.exercises[1].sets[1].weight = 155
        workout.exercises[0].sets[1].weight = 155
        summary = ExportService.format_workout_data(workout)
        self.assertEqual(summary.heaviest_set.exercise, "Bench Press")
        self.assertEqual(summary.heaviest_set.reps, 8)

    def test_summary_without_weights(self) -> None:
        workout = sample_workouts()[0]
        for entry in workout.exercises:
            for workout_set in entry.sets:
                workout_set.weight = None
        summary = ExportService.format_workout_data(workout)
        self.assertIsNone(summary.heaviest_set)
        self.assertEqual(summary.total_volume, 0)
        self.assertEqual(summary.total_sets, 5)

    def test_generate_report(self) -> None:
        report = ExportService.generate_workout_report(sample_workouts())
        self.assertEqual(report.total_workouts, 2)
        self.assertEqual(report.total_duration, 135)
        self.assertAlmostEqual(report.average_duration, 67.5)
        self.assertEqual(report.total_volume, 7865)
        self.assertAlmostEqual(report.average_frequency, 2.1875)
        self.assertEqual(
            [f.name for f in report.most_frequent_exercises],
            ["Bench Press", "Overhead Press", "Deadlift"],
        )

    def test_strength_progressions(self) -> None:
        workouts = sample_workouts()
        later = Workout.model_validate(
            {
                "name": "Push Again",
                "date": "2024-01-20T10:00:00Z",
                "exercises": [
                    {
                        "exerciseId": "ex1",
                        "exercise": bench_press(),
                        "sets": [{"reps": 5, "weight": 150}, {"reps": 3, "weight": 160}],
                    }
                ],
            }
        )
        report = ExportService.generate_workout_report([later] + workouts)
        bench = report.strength_progressions["Bench Press"]
        self.assertEqual(bench.start_weight, 155)
        self.assertEqual(bench.current_weight, 160)
        self.assertEqual(bench.improvement, 5)
        self.assertEqual(bench.start_date, workouts[0].date)
        self.assertEqual(report.most_frequent_exercises[0].name, "Bench Press")
        self.assertEqual(report.most_frequent_exercises[0].count, 2)
        self.assertEqual(report.strength_progressions["Deadlift"].improvement, 0)

    def test_empty_report(self) -> None:
        report = ExportService.generate_workout_report([])
        self.assertEqual(report.total_workouts, 0)
        self.assertEqual(report.average_duration, 0)
        self.assertEqual(report.average_frequency, 0)
        self.assertEqual(report.strength_progressions, {})

    def test_malformed_records_are_skipped(self) -> None:
        records = [w.to_wire() for w in sample_workouts()] + [{"name": ""}]
        report = ExportService.generate_workout_report(records)
        self.assertEqual(report.total_workouts, 2)


class ExportOptionsTest(unittest.TestCase):
    def test_date_range_filter(self) -> None:
        options = {
            "format": "json",
            "dateRange": {"start": "2024-01-16T00:00:00Z", "end": "2024-01-31T00:00:00Z"},
        }
        data = json.loads(ExportService.export_workouts(sample_workouts(), options))
        self.assertEqual([w["name"] for w in data], ["Pull Day"])

    def test_notes_can_be_excluded(self) -> None:
        options = ExportOptions(format="json", include_notes=False)
        data = json.loads(ExportService.export_workouts(sample_workouts(), options))
        self.assertNotIn("notes", data[0])
        self.assertNotIn("notes", data[0]["exercises"][0])

    def test_group_by_date(self) -> None:
        options = ExportOptions(format="json", group_by_date=True)
        data = json.loads(ExportService.export_workouts(sample_workouts(), options))
        self.assertEqual(sorted(data), ["2024-01-15", "2024-01-17"])
        self.assertEqual(data["2024-01-17"][0]["id"], "w2")

    def test_csv_grouped_by_date(self) -> None:
        options = ExportOptions(format="csv", group_by_date=True)
        text = ExportService.export_workouts(list(reversed(sample_workouts())), options)
        self.assertTrue(text.split("\n")[1].startswith("2024-01-15,Push Day"))

    def test_pdf(self) -> None:
        data = ExportService.export_workouts(sample_workouts(), ExportOptions(format="pdf"))
        self.assertTrue(data.startswith(b"%PDF"))
        self.assertEqual(ExportService.export_workouts_to_pdf([]), b"")


if __name__ == "__main__":
    unittest.main()
