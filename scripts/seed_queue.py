import asyncio
import os
import sys
import uuid

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from patientflow.core.config import settings
from patientflow.core.db import SessionLocal, init_models
from patientflow.core.security import Principal, issue_token
from patientflow.modules.visits.service import VisitLifecycleService

async def main(patients: int = 3):
    """
    Seeds a local queue: a few patients join, the first ones get approved,
    and bearer tokens are printed so the API can be exercised by hand.
    """
    print("Starting queue seed...")
    await init_models()

    org_id = uuid.UUID(settings.DEFAULT_ORG_ID)
    staff = Principal(user_id=uuid.uuid4(), org_id=org_id, roles=["staff"])
    doctor = Principal(user_id=uuid.uuid4(), org_id=org_id, roles=["doctor"])

    async with SessionLocal() as db:
        service = VisitLifecycleService(db)
        for i in range(patients):
            patient = Principal(user_id=uuid.uuid4(), org_id=org_id, roles=["patient"])
            visit = await service.join_queue(patient)
            print(f"  - patient {patient.user_id} joined queue as visit {visit.id}")
            if i < patients - 1:
                await service.process(staff, visit.id, "approved", room_number=f"{101 + i}", doctor_id=doctor.user_id)
                print(f"    ...approved into room {101 + i}")
            print(f"    token: {issue_token(patient.user_id, patient.roles, org_id)}")

    print(f"staff token:  {issue_token(staff.user_id, staff.roles, org_id)}")
    print(f"doctor token: {issue_token(doctor.user_id, doctor.roles, org_id)}")
    print("Seed complete.")

if __name__ == "__main__":
    asyncio.run(main(int(sys.argv[1]) if len(sys.argv) > 1 else 3))
