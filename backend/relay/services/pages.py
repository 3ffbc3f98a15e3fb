"""
HTML pages returned by /oauth/callback.

Four distinct outcomes, four pages: success, wrong account, generic error,
and the "no authorization code" error. Values shown on a page are escaped.
"""

from html import escape

_STYLE = """
        * { margin: 0; padding: 0; box-sizing: border-box; }
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', 'Roboto', sans-serif;
            background: %(background)s;
            min-height: 100vh;
            display: flex;
            align-items: center;
            justify-content: center;
            padding: 20px;
        }
        .container {
            background: white;
            border-radius: 24px;
            padding: 60px 40px;
            max-width: 640px;
            width: 100%%;
            text-align: center;
            box-shadow: 0 20px 60px rgba(0,0,0,0.3);
        }
        .icon { font-size: 80px; margin-bottom: 30px; }
        h1 { font-size: 38px; color: #2d3748; margin-bottom: 20px; }
        .detail { font-size: 20px; color: #4a5568; line-height: 1.6; margin-bottom: 30px; }
        .highlight { font-size: 24px; color: #667eea; font-weight: 600; margin-bottom: 30px; }
        .button {
            display: inline-block;
            background: linear-gradient(135deg, #667eea 0%%, #764ba2 100%%);
            color: white;
            padding: 16px 44px;
            border-radius: 12px;
            text-decoration: none;
            font-size: 20px;
            font-weight: 600;
        }
"""


def _page(title: str, background: str, icon: str, body: str) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title}</title>
    <style>{_STYLE % {"background": background}}</style>
</head>
<body>
    <div class="container">
        <div class="icon">{icon}</div>
        {body}
    </div>
</body>
</html>
"""


def success_page(email: str) -> str:
    return _page(
        "Authentication Successful",
        "linear-gradient(135deg, #667eea 0%, #764ba2 100%)",
        "✅",
        f"""<h1>Authentication Successful!</h1>
        <div class="highlight">{escape(email)}</div>
        <div class="detail">
            ✓ Token saved successfully<br>
            ✓ Gmail service configured<br>
            ✓ Email notifications enabled
        </div>
        <div class="detail">Your Gmail token has been saved and the service is now ready to send emails. You can close this window.</div>""",
    )


def wrong_account_page(used_email: str, required_email: str) -> str:
    return _page(
        "Wrong Account",
        "linear-gradient(135deg, #f093fb 0%, #f5576c 100%)",
        "⚠️",
        f"""<h1>Wrong Account</h1>
        <div class="detail">You used: {escape(used_email)}</div>
        <div class="detail">Please sign in with the correct account:</div>
        <div class="highlight">{escape(required_email)}</div>
        <a href="/oauth/auth" class="button">Try Again with Correct Account</a>""",
    )


def error_page(message: str) -> str:
    return _page(
        "Authentication Error",
        "linear-gradient(135deg, #434343 0%, #000000 100%)",
        "❌",
        f"""<h1>Authentication Failed</h1>
        <div class="detail">{escape(message)}</div>
        <a href="/oauth/auth" class="button">Try Again</a>""",
    )


def no_code_page() -> str:
    return _page(
        "Authorization Code Missing",
        "linear-gradient(135deg, #f6d365 0%, #fda085 100%)",
        "🔑",
        """<h1>No Authorization Code</h1>
        <div class="detail">No authorization code received. Start the authorization again from the beginning.</div>
        <a href="/oauth/auth" class="button">Start Authorization</a>""",
    )
