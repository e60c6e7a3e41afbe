# fleetgate/routers/registrations.py
"""Employee self-registration and the approval queue."""

from fastapi import APIRouter, Depends, HTTPException, status

from fleetgate.dependencies import get_registration_workflow
from fleetgate.schemas.registration import (
    EmployeeCreate, PendingRegistrationOut, RegistrationRequest, UserCredentialOut,
)
from fleetgate.services.registration_workflow import RegistrationWorkflow

router = APIRouter()


def _out(entry) -> PendingRegistrationOut:
    return PendingRegistrationOut(**entry.model_dump(exclude={"raw_credential", "approved"}))


@router.post("/registrations", response_model=PendingRegistrationOut,
             status_code=status.HTTP_201_CREATED, summary="Submit a self-registration")
async def submit_registration(body: RegistrationRequest,
                              workflow: RegistrationWorkflow = Depends(get_registration_workflow)):
    employee = EmployeeCreate(**body.model_dump(exclude={"password", "confirm_password"}))
    pending = await workflow.submit(employee, body.password)
    return _out(pending)


@router.get("/registrations/pending", response_model=list[PendingRegistrationOut],
            summary="Registrations awaiting approval")
def list_pending(workflow: RegistrationWorkflow = Depends(get_registration_workflow)):
    return [_out(entry) for entry in workflow.list_pending()]


@router.post("/registrations/{employee_id}/approve", response_model=UserCredentialOut,
             summary="Approve a registration and create the user")
async def approve(employee_id: int, workflow: RegistrationWorkflow = Depends(get_registration_workflow)):
    credential = await workflow.approve(employee_id)
    if credential is None:
        raise HTTPException(status_code=404, detail=f"No pending registration for employee {employee_id}")
    return UserCredentialOut(**credential.model_dump(exclude={"credential_secret"}))


@router.post("/registrations/{employee_id}/reject", summary="Reject a registration")
async def reject(employee_id: int, workflow: RegistrationWorkflow = Depends(get_registration_workflow)):
    if not await workflow.reject(employee_id):
        raise HTTPException(status_code=404, detail=f"No pending registration for employee {employee_id}")
    return {"status": "rejected", "employee_id": employee_id}
