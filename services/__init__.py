"""
10bis Automation Jobs

Short-lived jobs started by cron (or a GitHub Actions schedule). Each one
runs once, exits 0 on success or intentional skip and 1 on any failure.

Jobs:
-----
- token_refresh: Rotates the 10bis session tokens
  - Calls /Authentication/RefreshToken with the stored refresh token
  - Persists new tokens from headers/cookies/body (header values win)
  - Run daily so the refresh token never expires

- credit_loader: Loads the configured Amount onto the moneycard
  - Skipped on Friday/Saturday (Israel time) without any API call
  - --test checks the configuration without calling the API

- token_provisioner: One-shot manual tool
  - Stores tokens copied from the browser after the refresh token expired
  - --test-notifications sends a sample Teams card

Crontab example (server clock in UTC):
--------------------------------------
    0 4 * * *   cd /opt/tenbis && python -m services.token_refresh.main
    30 4 * * 0-4 cd /opt/tenbis && python -m services.credit_loader.main
"""
