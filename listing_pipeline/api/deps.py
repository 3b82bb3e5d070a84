from fastapi import Header, HTTPException, Request

from listing_pipeline.services.pipeline import ListingPipeline


def get_pipeline(request: Request) -> ListingPipeline:
    return request.app.state.pipeline


async def require_actor_id(x_user_id: str | None = Header(default=None)) -> str:
    # identity is established upstream; this service only needs the acting user id
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing x-user-id header")
    if len(x_user_id) > 200:
        raise HTTPException(status_code=400, detail="x-user-id too long")
    return x_user_id.strip()
