"""AWS Lambda entry point.

Deployed as ``provisioner_api.lambda_handler.handler`` behind API Gateway.
Requires the ``lambda`` extra (mangum).
"""

from mangum import Mangum

from provisioner_api.main import app

# Mangum wraps FastAPI for AWS Lambda + API Gateway
handler = Mangum(app, lifespan="off")
