"""Shared fixtures: an in-memory database, a temporary upload root and a
small seeded catalog.

Seeded data:
- Degree programmes D1 (collegio CL001) and D3 (collegio CL003, resume required)
- Students s123456 (D1, logged in) and s654321 (D3)
- Teachers 1-4, SDGs 1-5, keywords 1-2, embargo motivations 1-3, license 1
- Application 1 for s123456, pending, supervisor teacher 1 and co-supervisor teacher 2
"""

import io

import pytest

from thesisflow.config import Config
from thesisflow.runtime import ThesisRuntime
from thesisflow.types import StudentContext

STUDENT_ID = "s123456"
RESUME_STUDENT_ID = "s654321"

PDFA_BYTES = (
    b"%PDF-1.7\n"
    b"<x:xmpmeta><rdf:RDF><rdf:Description pdfaid:part=\"1\" pdfaid:conformance=\"B\"/>"
    b"</rdf:RDF></x:xmpmeta>\n"
    b"%%EOF\n"
)
PDFA_ELEMENT_BYTES = b"%PDF-1.4\n<pdfaid:part>2</pdfaid:part>\n%%EOF\n"
PLAIN_PDF_BYTES = b"%PDF-1.7\n1 0 obj\n<< /Type /Catalog >>\nendobj\n%%EOF\n"
NOT_PDF_BYTES = b"PK\x03\x04 this is a zip archive"


@pytest.fixture
def runtime(tmp_path):
    config = Config(
        database_url="sqlite://",
        upload_root=str(tmp_path),
        resume_required_collegi=frozenset({"CL003"}),
        log_level="DEBUG",
    )
    rt = ThesisRuntime(config)
    rt.init_schema()
    yield rt
    rt.engine.dispose()


@pytest.fixture
def seeded(runtime):
    with runtime.unit_of_work() as (repos, _, _batch):
        repos.degree_programmes.bulk_create([
            {"id": "D1", "description": "Computer Engineering", "id_collegio": "CL001"},
            {"id": "D3", "description": "Architecture", "id_collegio": "CL003"},
        ])
        repos.students.bulk_create([
            {"id": STUDENT_ID, "first_name": "Mario", "last_name": "Rossi", "degree_id": "D1"},
            {"id": RESUME_STUDENT_ID, "first_name": "Anna", "last_name": "Bianchi", "degree_id": "D3"},
        ])
        repos.logged_students.create(student_id=STUDENT_ID)
        repos.teachers.bulk_create(
            {"id": i, "first_name": f"Teacher{i}", "last_name": "Prof", "email": f"t{i}@uni.it"}
            for i in range(1, 5)
        )
        repos.sdgs.bulk_create({"id": i, "goal": f"Goal {i}"} for i in range(1, 6))
        repos.keywords.bulk_create([
            {"id": 1, "keyword": "apprendimento", "keyword_en": "learning"},
            {"id": 2, "keyword": "reti", "keyword_en": "networks"},
        ])
        repos.embargo_motivations.bulk_create(
            {"id": i, "motivation": f"Motivazione {i}", "motivation_en": f"Motivation {i}"}
            for i in range(1, 4)
        )
        repos.licenses.create(id=1, name="CC BY 4.0")
        repos.applications.create(id=1, topic="Graph neural networks", student_id=STUDENT_ID, status="pending")
        repos.application_supervisors.bulk_create([
            {"thesis_application_id": 1, "teacher_id": 1, "is_supervisor": True},
            {"thesis_application_id": 1, "teacher_id": 2, "is_supervisor": False},
        ])
    return runtime


@pytest.fixture
def context():
    return StudentContext(student_id=STUDENT_ID)


@pytest.fixture
def thesis_id(seeded):
    """Approve application 1 and return the id of the created thesis."""
    return seeded.transition_application({"id": 1, "new_status": "approved"})["id"]


@pytest.fixture
def make_upload(runtime):
    def _make(content=PDFA_BYTES, filename="thesis.pdf", content_type="application/pdf"):
        return runtime.uploads.save_temp(io.BytesIO(content), filename, content_type)
    return _make


@pytest.fixture
def set_thesis(runtime):
    """Overwrite thesis columns directly, bypassing the state machines."""
    def _set(thesis_id, **columns):
        with runtime.unit_of_work() as (repos, _, _batch):
            thesis = repos.theses.find_by_id(thesis_id)
            for name, value in columns.items():
                setattr(thesis, name, value)
            repos.theses.save(thesis)
    return _set
