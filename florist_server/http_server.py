"""HTTP proxy that adds Florist One credentials to storefront API calls."""

import logging
import re
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .config import Settings

logger = logging.getLogger("florist-http-server")


class UpstreamError(Exception):
    """Florist One answered with something other than a usable JSON body."""

    def __init__(self, message: str, status_code: Optional[int] = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details


class CartUpdateRequest(BaseModel):
    cartId: Optional[str] = None
    code: Optional[str] = None
    action: str = "add"


def _looks_like_error_page(text: str) -> bool:
    return "<html" in text or "<!DOCTYPE" in text or text.strip() == "404"


def parse_upstream(
    response: httpx.Response, ok_statuses: tuple[int, ...] = (200,)
) -> Any:
    """
    Turn an upstream response into JSON data.

    Raises:
        UpstreamError: For HTML error pages, invalid JSON or unexpected statuses
    """
    text = response.text
    if _looks_like_error_page(text):
        raise UpstreamError(
            f"API returned error. Status: {response.status_code}. Response: {text[:500]}",
            status_code=response.status_code if response.status_code >= 400 else None,
        )
    try:
        data = response.json()
    except ValueError:
        raise UpstreamError(
            f"API response is not valid JSON. Status: {response.status_code}. Response: {text[:500]}",
            status_code=response.status_code if response.status_code >= 400 else None,
        )
    if response.status_code not in ok_statuses:
        raise UpstreamError(
            f"API returned status {response.status_code}: {text[:500]}",
            status_code=response.status_code,
            details=data,
        )
    return data


def error_response(error: str, exc: Exception) -> JSONResponse:
    """Uniform error envelope: upstream status when known, otherwise 500."""
    status_code = 500
    message = str(exc)
    details: Any = "No additional details"
    if isinstance(exc, UpstreamError):
        status_code = exc.status_code or 500
        message = exc.message
        if exc.details is not None:
            details = exc.details
    elif isinstance(exc, httpx.HTTPError):
        message = f"Could not reach Florist One: {exc}"
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "message": message, "details": details},
    )


def missing_param(message: str) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": message})


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the proxy application."""
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup and shutdown."""
        # Startup
        logger.info("Starting Florist storefront proxy...")
        settings.log_summary()
        if not settings.has_credentials:
            logger.warning("Florist One credentials missing; upstream calls will be rejected")
        auth = (settings.api_key or "", settings.api_password or "")
        app.state.upstream = httpx.AsyncClient(
            base_url=settings.florist_api_base.rstrip("/"),
            auth=auth,
            timeout=settings.request_timeout,
            transport=transport,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )

        yield

        # Shutdown
        logger.info("Shutting down Florist storefront proxy...")
        await app.state.upstream.aclose()

    app = FastAPI(
        title="Florist Storefront Proxy",
        description="Authenticated proxy for the Florist One flower shop API",
        version="0.1.0",
        lifespan=lifespan,
    )

    def upstream(request: Request) -> httpx.AsyncClient:
        return request.app.state.upstream

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    # Product endpoints
    @app.get("/api/products/{code}")
    async def get_product(code: str, request: Request):
        """Get a single product by code."""
        try:
            response = await upstream(request).get(
                "/rest/flowershop/getproducts", params={"code": code}
            )
            return parse_upstream(response)
        except Exception as e:
            logger.error(f"Error fetching product: {e}")
            return error_response("Failed to fetch product", e)

    @app.get("/api/products")
    async def list_products(
        request: Request,
        category: Optional[str] = None,
        count: Optional[int] = None,
        start: Optional[int] = None,
    ):
        """List products, optionally filtered by category."""
        params: dict[str, Any] = {}
        if category and category != "all":
            params["category"] = category
        if count:
            params["count"] = count
        if start:
            params["start"] = start
        try:
            response = await upstream(request).get("/rest/flowershop/getproducts", params=params)
            return parse_upstream(response)
        except Exception as e:
            logger.error(f"Error fetching products: {e}")
            return error_response("Failed to fetch products", e)

    # Shopping cart endpoints
    @app.post("/api/cart/create")
    async def create_cart(request: Request):
        """Create a new shopping cart session."""
        try:
            response = await upstream(request).post("/rest/shoppingcart", json={})
            return parse_upstream(response, ok_statuses=(200, 201))
        except Exception as e:
            logger.error(f"Error creating cart: {e}")
            return error_response("Failed to create cart", e)

    @app.put("/api/cart")
    async def update_cart(body: CartUpdateRequest, request: Request):
        """Add an item, remove an item, or clear the cart."""
        if not body.cartId:
            return missing_param("cartId is required")
        if body.action not in ("add", "remove", "clear"):
            return missing_param(f"Unknown cart action: {body.action}")
        if body.action != "clear" and not body.code:
            return missing_param(f"code is required to {body.action} a cart item")

        params = {"sessionid": body.cartId, "action": body.action}
        if body.code:
            params["productcode"] = body.code
        logger.info(f"Cart {body.action}: session={body.cartId} code={body.code}")

        try:
            response = await upstream(request).put("/rest/shoppingcart", params=params, json={})
            logger.info(f"API Response Status: {response.status_code}")
            if response.status_code == 500:
                match = re.search(r"<h2[^>]*>([^<]+)</h2>", response.text, re.IGNORECASE) or re.search(
                    r"<h3[^>]*>([^<]+)</h3>", response.text, re.IGNORECASE
                )
                reason = match.group(1) if match else "Internal server error from Florist One API"
                raise UpstreamError(
                    f"Florist One API Error (500): {reason}. "
                    f"Product code: {body.code}, Session: {body.cartId}",
                    status_code=500,
                    details=response.text[:1000],
                )
            return parse_upstream(response, ok_statuses=(200, 201))
        except Exception as e:
            logger.error(f"Error updating cart: {e}")
            return error_response("Failed to update cart", e)

    @app.get("/api/cart")
    async def get_cart(request: Request, cartId: Optional[str] = None):
        """Retrieve a cart and its contents."""
        if not cartId:
            return missing_param("cartId parameter is required")
        try:
            response = await upstream(request).get("/rest/shoppingcart", params={"sessionid": cartId})
            return parse_upstream(response)
        except Exception as e:
            logger.error(f"Error retrieving cart: {e}")
            return error_response("Failed to retrieve cart", e)

    @app.delete("/api/cart")
    async def destroy_cart(request: Request, cartId: Optional[str] = None):
        """Destroy a shopping cart."""
        if not cartId:
            return missing_param("cartId parameter is required")
        try:
            response = await upstream(request).delete(
                "/rest/shoppingcart", params={"sessionid": cartId}
            )
            return parse_upstream(response)
        except Exception as e:
            logger.error(f"Error destroying cart: {e}")
            return error_response("Failed to destroy cart", e)

    # Delivery endpoints
    @app.get("/api/delivery/checkdates")
    async def check_delivery_dates(request: Request, zipcode: Optional[str] = None):
        """List available delivery dates for a zipcode."""
        if not zipcode:
            return missing_param("zipcode parameter is required")
        try:
            response = await upstream(request).get(
                "/rest/flowershop/checkdeliverydate", params={"zipcode": zipcode}
            )
            return parse_upstream(response)
        except Exception as e:
            logger.error(f"Error checking delivery dates: {e}")
            return error_response("Failed to check delivery dates", e)

    @app.get("/api/delivery/checkdate")
    async def check_delivery_date(
        request: Request, zipcode: Optional[str] = None, date: Optional[str] = None
    ):
        """Check whether one delivery date is available."""
        if not zipcode or not date:
            return missing_param("zipcode and date parameters are required")
        try:
            response = await upstream(request).get(
                "/rest/flowershop/checkdeliverydate", params={"zipcode": zipcode, "date": date}
            )
            return parse_upstream(response)
        except Exception as e:
            logger.error(f"Error checking delivery date: {e}")
            return error_response("Failed to check delivery date", e)

    # Order endpoints
    @app.get("/api/order/total")
    async def get_order_total(request: Request, products: Optional[str] = None):
        """Get the order total for a JSON-encoded product list."""
        if not products:
            return missing_param("products parameter is required")
        try:
            response = await upstream(request).get(
                "/rest/flowershop/gettotal", params={"products": products}
            )
            return parse_upstream(response)
        except Exception as e:
            logger.error(f"Error getting order total: {e}")
            return error_response("Failed to get order total", e)

    @app.get("/api/authorizenet/key")
    async def get_authorizenet_key(request: Request):
        """Get the Authorize.Net client key used for card tokenization."""
        try:
            response = await upstream(request).get("/rest/flowershop/getauthorizenetkey")
            return parse_upstream(response)
        except Exception as e:
            logger.error(f"Error getting AuthorizeNet key: {e}")
            return error_response("Failed to get AuthorizeNet key", e)

    @app.post("/api/order/place")
    async def place_order(request: Request):
        """Place an order."""
        try:
            order = await request.json()
            response = await upstream(request).post("/rest/flowershop/placeorder", json=order)
            return parse_upstream(response, ok_statuses=(200, 201))
        except Exception as e:
            logger.error(f"Error placing order: {e}")
            return error_response("Failed to place order", e)

    @app.get("/api/order/{order_no}")
    async def get_order_info(order_no: str, request: Request):
        """Get information about a placed order."""
        try:
            response = await upstream(request).get(
                "/rest/flowershop/getorderinfo", params={"orderno": order_no}
            )
            return parse_upstream(response)
        except Exception as e:
            logger.error(f"Error getting order information: {e}")
            return error_response("Failed to get order information", e)

    return app


def run_http_server(host: str = "0.0.0.0", port: int = 8080):
    """Run the HTTP server."""
    import uvicorn

    settings = Settings.from_env()
    logging.basicConfig(level=settings.log_level.upper())
    logger.info(f"Frontend API available at http://{host}:{port}/api")
    uvicorn.run(create_app(settings), host=host, port=port, log_level="info")


if __name__ == "__main__":
    run_http_server()
