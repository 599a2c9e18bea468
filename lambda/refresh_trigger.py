"""
AWS Lambda function that asks the running service to refresh its stablecoin snapshot.

Schedule with EventBridge when the in-process scheduler is disabled
(REFRESH_ENABLED=false), e.g. for multi-instance deployments.
"""

import json
import os
import urllib.error
import urllib.request
from typing import Any, Dict


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    POST /refresh on the service.

    Environment Variables:
        API_URL: Base URL of the deployed service
        REFRESH_TIMEOUT: Request timeout in seconds (default: 120)

    EventBridge Rule Example:
        Schedule: rate(15 minutes)
    """
    api_url = os.environ.get("API_URL")
    if not api_url:
        return {"statusCode": 500, "body": json.dumps({"error": "API_URL environment variable not set"})}

    timeout = int(os.environ.get("REFRESH_TIMEOUT", "120"))
    endpoint = f"{api_url.rstrip('/')}/refresh"
    request = urllib.request.Request(endpoint, method="POST", headers={"Content-Type": "application/json", "User-Agent": "StablewatchRefreshTrigger/1.0"})

    try:
        print(f"Triggering refresh at: {endpoint}")
        with urllib.request.urlopen(request, timeout=timeout) as response:
            result = json.loads(response.read().decode("utf-8"))
    except urllib.error.HTTPError as e:
        error_body = e.read().decode("utf-8") if e.fp else str(e)
        print(f"Refresh request failed with HTTP {e.code}: {error_body}")
        return {"statusCode": e.code, "body": json.dumps({"success": False, "error": f"HTTP {e.code}: {error_body}"})}
    except urllib.error.URLError as e:
        print(f"Refresh request failed: {e}")
        return {"statusCode": 502, "body": json.dumps({"success": False, "error": f"Connection error: {e}"})}

    if "refresh already in progress" in result.get("errors", []):
        print("A refresh is already running; nothing to do")
    else:
        print(f"Refresh finished: {result.get('stablecoins_updated', 0)} stablecoins, errors={result.get('errors')}")

    return {"statusCode": 200, "body": json.dumps({"success": result.get("success", False), "refresh_result": result})}


# For local testing
if __name__ == "__main__":
    import sys

    if len(sys.argv) > 1:
        os.environ["API_URL"] = sys.argv[1]

    print(json.dumps(lambda_handler({}, None), indent=2))
