"""
NFT Order Microservice

Responsibilities:
- Order intake from the storefront checkout
- Payment, fulfillment and cancellation event handling
- Print-on-demand fulfillment dispatch
- Order-bound NFT issuance and ownership lookup
- Operator reconciliation
"""

from fastapi import FastAPI, HTTPException, Depends, status, Query, Path, Body
from fastapi.responses import JSONResponse
import uvicorn
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from core.config import get_settings
from core.logger import setup_service_logger

from .models import (
    CancellationRequestedEvent,
    FulfillmentStatusChangedEvent,
    Order,
    OrderCreateRequest,
    OrderCreatedEvent,
    OrderFilter,
    OrderPage,
    OrderStatus,
    OwnershipResponse,
    PaymentConfirmedEvent,
    PaymentFailedEvent,
    PaymentRefundedEvent,
    PaymentStatus,
    PipelineResponse,
)
from .pipeline_service import OrderPipelineService
from .protocols import OrderNotFoundError, PipelineError, TransientError

SERVICE_NAME = "nft_order_service"

# Initialize configuration
config = get_settings()

# Setup loggers (use actual service name)
logger = setup_service_logger(SERVICE_NAME)


class NftOrderMicroservice:
    """NFT order microservice core class"""

    def __init__(self):
        self.pipeline: Optional[OrderPipelineService] = None

    async def initialize(self):
        """Initialize the microservice"""
        from .factory import create_pipeline_service

        try:
            self.pipeline = await create_pipeline_service(config)
            logger.info("NFT order microservice initialized successfully")
        except Exception as e:
            logger.error(f"Failed to initialize NFT order microservice: {e}")
            raise

    async def shutdown(self):
        """Shutdown the microservice"""
        try:
            if self.pipeline:
                await self.pipeline.close()
            logger.info("NFT order microservice shutdown completed")
        except Exception as e:
            logger.error(f"Error during shutdown: {e}")


# Global microservice instance
nft_order_microservice = NftOrderMicroservice()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management"""
    await nft_order_microservice.initialize()
    yield
    await nft_order_microservice.shutdown()


# Create FastAPI application
app = FastAPI(
    title="NFT Order Service",
    description="Order fulfillment and NFT issuance pipeline",
    version="1.0.0",
    lifespan=lifespan,
)


# Dependency injection
def get_pipeline() -> OrderPipelineService:
    """Get pipeline service instance"""
    if not nft_order_microservice.pipeline:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="NFT order service not initialized",
        )
    return nft_order_microservice.pipeline


def _event_result(response: PipelineResponse) -> JSONResponse:
    """Business outcomes are 200; only internal errors ask the sender to retry"""
    status_code = (
        status.HTTP_500_INTERNAL_SERVER_ERROR
        if response.error_code == "INTERNAL_ERROR"
        else status.HTTP_200_OK
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


# Health check endpoints

@app.get("/health")
async def health_check():
    """Service health check"""
    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "port": config.port,
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@app.get("/health/detailed")
async def detailed_health_check(pipeline: OrderPipelineService = Depends(get_pipeline)):
    """Health check with collaborator summary"""
    return await pipeline.health_check()


# Order endpoints

@app.post("/api/v1/orders", response_model=PipelineResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
    request: OrderCreateRequest,
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    """Create a new order (storefront checkout)"""
    response = await pipeline.handle_order_created(OrderCreatedEvent(order=request))
    if response.error_code == "DUPLICATE_ORDER":
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=response.message)
    if not response.success:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=response.message)
    return response


@app.get("/api/v1/orders/{order_id}", response_model=Order)
async def get_order(
    order_id: str = Path(..., description="Order ID"),
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    """Get order details"""
    try:
        return await pipeline.get_order(order_id)
    except OrderNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")


@app.get("/api/v1/orders", response_model=OrderPage)
async def list_orders(
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(10, ge=1, le=100, description="Items per page"),
    order_status: Optional[OrderStatus] = Query(None, alias="status", description="Filter by status"),
    payment_status: Optional[PaymentStatus] = Query(None, description="Filter by payment status"),
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    """List orders, newest first"""
    filter_params = OrderFilter(
        status=order_status, payment_status=payment_status, page=page, page_size=page_size
    )
    return await pipeline.list_orders(filter_params)


@app.post("/api/v1/orders/{order_id}/reconcile", response_model=PipelineResponse)
async def reconcile_order(
    order_id: str = Path(..., description="Order ID"),
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    """Refresh provider status and re-drive unfinished fulfillment or minting"""
    response = await pipeline.reconcile(order_id)
    if response.error_code == OrderNotFoundError.error_code:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=response.message)
    return _event_result(response)


# Inbound event endpoints

@app.post("/api/v1/events/payment-confirmed", response_model=PipelineResponse)
async def payment_confirmed(
    event: PaymentConfirmedEvent,
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    return _event_result(await pipeline.handle_payment_confirmed(event))


@app.post("/api/v1/events/payment-failed", response_model=PipelineResponse)
async def payment_failed(
    event: PaymentFailedEvent,
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    return _event_result(await pipeline.handle_payment_failed(event))


@app.post("/api/v1/events/payment-refunded", response_model=PipelineResponse)
async def payment_refunded(
    event: PaymentRefundedEvent,
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    return _event_result(await pipeline.handle_payment_refunded(event))


@app.post("/api/v1/events/fulfillment-status", response_model=PipelineResponse)
async def fulfillment_status_changed(
    event: FulfillmentStatusChangedEvent,
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    return _event_result(await pipeline.handle_fulfillment_status(event))


@app.post("/api/v1/events/cancellation-requested", response_model=PipelineResponse)
async def cancellation_requested(
    event: CancellationRequestedEvent,
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    return _event_result(await pipeline.handle_cancellation(event))


@app.post("/api/v1/webhooks/printful", response_model=PipelineResponse)
async def printful_webhook(
    payload: Dict[str, Any] = Body(...),
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    """Printful webhook (package_shipped, order_failed, order_updated, ...)"""
    return _event_result(await pipeline.handle_provider_webhook(payload))


# NFT endpoints

@app.get("/api/v1/nft/metadata/{token_id}")
async def get_token_metadata(
    token_id: str = Path(..., description="Token ID"),
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    """ERC-721 metadata document referenced by the token URI"""
    metadata = await pipeline.get_token_metadata(token_id)
    if metadata is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Metadata not found")
    return metadata


@app.get("/api/v1/nft/{token_id}/owner", response_model=OwnershipResponse)
async def get_token_owner(
    token_id: str = Path(..., description="Token ID"),
    expected_owner: Optional[str] = Query(None, description="Address to compare against"),
    pipeline: OrderPipelineService = Depends(get_pipeline),
):
    """Current on-chain owner of a token"""
    try:
        ownership = await pipeline.verify_nft_ownership(token_id, expected_owner)
    except TransientError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    except PipelineError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if ownership.owner is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Token not found")
    return ownership


if __name__ == "__main__":
    uvicorn.run(
        "microservices.nft_order_service.main:app",
        host=config.host,
        port=config.port,
        log_level="info",
    )
