import unittest
from datetime import date

from validation import (
    sanitize_string,
    validate_change_password_request,
    validate_create_meldunek_request,
    validate_date,
    validate_email,
    validate_equipment_list,
    validate_incident_date,
    validate_login_request,
    validate_password_strength,
    validate_register_request,
    validate_update_meldunek_request,
    validate_update_profile_request,
    validate_uuid,
)

TODAY = date(2024, 6, 15)
DEPARTMENT_ID = "3f1e2d4c-5b6a-4789-9abc-def012345678"


class FieldValidationTests(unittest.TestCase):
    def test_email(self):
        self.assertTrue(validate_email("jan.kowalski@osp.pl"))
        self.assertFalse(validate_email("jan.kowalski"))
        self.assertFalse(validate_email("jan@"))
        self.assertFalse(validate_email("jan@osp"))
        self.assertFalse(validate_email("jan kowalski@osp.pl"))
        self.assertFalse(validate_email("a" * 250 + "@osp.pl"))
        self.assertFalse(validate_email(None))

    def test_password_reports_each_violation(self):
        ok, errors = validate_password_strength("abc")
        self.assertFalse(ok)
        self.assertEqual(errors, [
            "Must be at least 8 characters",
            "Must contain uppercase letter",
            "Must contain number",
            "Must contain special character",
        ])

        self.assertEqual(validate_password_strength("Haslo123!"), (True, []))
        self.assertEqual(validate_password_strength("HASLO123!")[1], ["Must contain lowercase letter"])

    def test_uuid(self):
        self.assertTrue(validate_uuid(DEPARTMENT_ID))
        self.assertTrue(validate_uuid(DEPARTMENT_ID.upper()))
        self.assertFalse(validate_uuid("not-a-uuid"))
        self.assertFalse(validate_uuid(123))

    def test_dates(self):
        self.assertTrue(validate_date("2024-02-29"))
        self.assertFalse(validate_date("2023-02-29"))
        self.assertFalse(validate_date("15.06.2024"))

        self.assertIsNone(validate_incident_date("2024-06-15", TODAY))
        self.assertIsNone(validate_incident_date("2023-06-15", TODAY))
        self.assertIsNotNone(validate_incident_date("2024-06-16", TODAY))
        self.assertIsNotNone(validate_incident_date("2023-06-14", TODAY))
        self.assertIsNotNone(validate_incident_date("wczoraj", TODAY))
        self.assertIsNotNone(validate_incident_date(None, TODAY))

    def test_equipment_list(self):
        self.assertTrue(validate_equipment_list(["GBA 2,5/16", "SLRt"]))
        self.assertFalse(validate_equipment_list(["ok", ""]))
        self.assertFalse(validate_equipment_list(["x"] * 21))
        self.assertFalse(validate_equipment_list("GBA"))

    def test_sanitize_string(self):
        self.assertEqual(sanitize_string("  <b>OSP</b>  "), "bOSP/b")
        self.assertEqual(sanitize_string("JavaScript:alert(1)"), "alert(1)")
        self.assertEqual(sanitize_string("x" * 300, 10), "x" * 10)
        self.assertIsNone(sanitize_string(None))


class AuthPayloadTests(unittest.TestCase):
    def valid_register(self, **overrides):
        data = {
            "email": "jan@osp.pl",
            "password": "Haslo123!",
            "fire_department_id": DEPARTMENT_ID,
            "first_name": "Jan",
            "last_name": "Kowalski",
        }
        data.update(overrides)
        return data

    def test_register_accepts_department_id_or_name(self):
        self.assertTrue(validate_register_request(self.valid_register()).valid)

        by_name = self.valid_register(fire_department_id=None, fire_department_name="OSP Izabelin")
        self.assertTrue(validate_register_request(by_name).valid)

    def test_register_errors(self):
        result = validate_register_request(self.valid_register(
            email="bad", password="short", fire_department_id="nope", role="chief", last_name="x" * 101,
        ))
        self.assertFalse(result.valid)
        self.assertEqual(set(result.errors), {"email", "password", "fire_department_id", "role", "last_name"})

    def test_register_requires_a_department(self):
        data = self.valid_register()
        del data["fire_department_id"]
        self.assertIn("fire_department_name", validate_register_request(data).errors)

    def test_non_dict_body(self):
        for validator in (validate_register_request, validate_login_request,
                          validate_update_profile_request, validate_change_password_request):
            self.assertEqual(validator(["a"]).errors, {"_general": "Invalid request body"})

    def test_login(self):
        self.assertTrue(validate_login_request({"email": "jan@osp.pl", "password": "x"}).valid)
        self.assertEqual(set(validate_login_request({}).errors), {"email", "password"})

    def test_update_profile_needs_a_field(self):
        self.assertIn("_general", validate_update_profile_request({}).errors)
        self.assertTrue(validate_update_profile_request({"first_name": "Anna"}).valid)

    def test_change_password(self):
        result = validate_change_password_request({"current_password": "old", "new_password": "weak"})
        self.assertEqual(set(result.errors), {"new_password"})


class MeldunekPayloadTests(unittest.TestCase):
    def valid_create(self, **overrides):
        data = {
            "incident_name": "Pożar traw",
            "description": "Pożar suchych traw przy drodze.",
            "incident_date": "2024-06-10",
        }
        data.update(overrides)
        return data

    def test_create_valid(self):
        self.assertTrue(validate_create_meldunek_request(self.valid_create(), TODAY).valid)

    def test_create_missing_required(self):
        result = validate_create_meldunek_request({}, TODAY)
        self.assertEqual(set(result.errors), {"incident_name", "description", "incident_date"})

    def test_create_field_rules(self):
        result = validate_create_meldunek_request(self.valid_create(
            incident_name="ab",
            description="za krótki",
            location_latitude=91,
            location_longitude="21.0",
            start_time="2024-06-10T12:00:00Z",
            end_time="2024-06-10T11:00:00Z",
        ), TODAY)
        self.assertEqual(
            set(result.errors),
            {"incident_name", "description", "location_latitude", "location_longitude", "end_time"},
        )

    def test_lengths_measured_after_sanitizing(self):
        result = validate_create_meldunek_request(self.valid_create(
            incident_name="<<<>>>",
            description="javascript:<ab>",
        ), TODAY)
        self.assertEqual(set(result.errors), {"incident_name", "description"})

    def test_update_needs_a_known_field(self):
        result = validate_update_meldunek_request({"unknown": 1}, TODAY)
        self.assertEqual(result.errors, {"_general": "No valid fields to update"})

    def test_update_checks_present_fields_only(self):
        self.assertTrue(validate_update_meldunek_request({"commander": "Jan Kowalski"}, TODAY).valid)
        result = validate_update_meldunek_request({"incident_name": ""}, TODAY)
        self.assertIn("incident_name", result.errors)


if __name__ == "__main__":
    unittest.main()
