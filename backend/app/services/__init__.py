# Services package init
"""
Snapcheck Backend — Services Layer
====================================

What:  Business rules between the routes (HTTP) and the ORM models.

Service Inventory:
    - AccountService: plan resolution, screenshot quota, purchase status,
                      permissions, account updates, trial termination
    - ProjectService: paginated project listing and per-project consumption
    - BuildService:   build lookup and derived build status
    - StripeService:  Stripe subscription calls behind retry + circuit breaker

Services are stateless singletons; each method receives the request's
AsyncSession. The background jobs in app.jobs reuse the same models.
"""
