"""Account endpoints.

Sign-up and sign-in happen directly against the hosted auth service from
the frontend; these server routes are placeholders.
"""

from fastapi import APIRouter, HTTPException

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/register")
async def register():
    raise HTTPException(status_code=501, detail="Register endpoint not yet implemented")


@router.post("/login")
async def login():
    raise HTTPException(status_code=501, detail="Login endpoint not yet implemented")


@router.post("/logout")
async def logout():
    raise HTTPException(status_code=501, detail="Logout endpoint not yet implemented")
