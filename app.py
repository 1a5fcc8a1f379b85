"""
Web App using a Managed Identity as a Federated Identity Credential (MI-as-FIC)
Signs users in, calls Microsoft Graph, Blob Storage and a Key Vault in another tenant
without any client secret
"""

import logging
import uuid
from functools import wraps

from flask import Flask, jsonify, render_template, session, request, redirect, url_for
from flask_session import Session
import msal

import app_config
from credentials import CredentialCache, managed_identity_assertion
from exceptions import MiFicError
from graph import GraphClient, fetch_profile
from models import Comment, IdentityConfig, StorageConfig
from storage import CommentStore
from vault import fetch_secret

logging.basicConfig(
    level=app_config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config.from_object(app_config)
Session(app)  # Initializes Flask-Session with filesystem storage

from werkzeug.middleware.proxy_fix import ProxyFix
app.wsgi_app = ProxyFix(app.wsgi_app, x_proto=1, x_host=1)

# Federated credentials shared by every request in this process
credential_cache = CredentialCache()


def login_required(f):
    """Redirect anonymous users to sign-in"""
    @wraps(f)
    def decorated(*args, **kwargs):
        if not session.get("user"):
            return redirect(url_for("login"))
        return f(*args, **kwargs)
    return decorated


@app.route("/")
def index():
    """Home page - shows sign-in status"""
    return render_template('index.html',
                         user=session.get("user"),
                         version=msal.__version__)


@app.route("/login")
def login():
    """Initiate authentication flow"""
    session["state"] = str(uuid.uuid4())
    auth_app = _build_msal_app()

    auth_url = auth_app.get_authorization_request_url(
        app.config["SCOPE"],
        state=session["state"],
        redirect_uri=url_for("authorized", _external=True)
    )

    return redirect(auth_url)


@app.route(app_config.REDIRECT_PATH)
def authorized():
    """Handle the redirect from Entra ID after authentication"""
    if request.args.get('state') != session.get("state"):
        return redirect(url_for("index"))

    if "error" in request.args:
        return render_template("auth_error.html", result=request.args)

    if "code" in request.args:
        cache = _load_cache()
        auth_app = _build_msal_app(cache=cache)

        result = auth_app.acquire_token_by_authorization_code(
            request.args['code'],
            scopes=app.config["SCOPE"],
            redirect_uri=url_for("authorized", _external=True)
        )

        if "error" in result:
            logger.warning("Sign-in failed: %s", result.get("error_description", result["error"]))
            return render_template("auth_error.html", result=result)

        session["user"] = result.get("id_token_claims")
        _save_cache(cache)

    return redirect(url_for("index"))


@app.route("/logout")
def logout():
    """Sign out the user"""
    session.clear()

    return redirect(
        app.config["AUTHORITY"] + "/oauth2/v2.0/logout" +
        "?post_logout_redirect_uri=" + url_for("index", _external=True)
    )


@app.route("/graph")
@login_required
def graph():
    """Show the signed-in user's Graph profile and photo"""
    try:
        token = _get_token_from_cache(app.config["SCOPE"])
    except Exception as e:
        # the managed identity assertion is requested while MSAL refreshes the token
        logger.error("Could not acquire a Graph token: %s", e)
        profile = {"display_name": None, "photo_base64": None, "me": None}
        return render_template('graph.html', profile=profile, error=f"Could not acquire a Graph token: {e}")

    if not token or "access_token" not in token:
        return redirect(url_for("login"))

    with _graph_client(token["access_token"]) as client:
        profile, error = fetch_profile(client)
    return render_template('graph.html', profile=profile, error=error)


@app.route("/storage")
@login_required
def storage_index():
    """List comments stored as blobs"""
    try:
        comments = _comment_store().list()
    except MiFicError as e:
        return render_template('storage/index.html', comments=[], error=str(e)), e.status_code

    return render_template('storage/index.html', comments=comments, error=None)


@app.route("/storage/create", methods=["GET", "POST"])
@login_required
def storage_create():
    """Create a comment"""
    if request.method == "GET":
        return render_template('storage/create.html', comment=Comment(name=""), error=None)

    comment = Comment(
        name=request.form.get("name", "").strip(),
        text=request.form.get("text", ""),
    )
    if not comment.name:
        return render_template('storage/create.html', comment=comment, error="Name is required"), 400

    try:
        _comment_store().create(comment)
    except MiFicError as e:
        return render_template('storage/create.html', comment=comment, error=str(e)), e.status_code

    return redirect(url_for("storage_index"))


@app.route("/storage/delete/<path:name>", methods=["GET", "POST"])
@login_required
def storage_delete(name):
    """Confirm (GET) and delete (POST) a comment"""
    try:
        store = _comment_store()
        if request.method == "GET":
            comment = store.get(name)
            return render_template('storage/delete.html', comment=comment, error=None)

        store.delete(Comment(name=name))
    except MiFicError as e:
        return render_template('storage/delete.html', comment=Comment(name=name), error=str(e)), e.status_code

    return redirect(url_for("storage_index"))


@app.route("/vault")
@login_required
def vault():
    """Fetch a secret from the Key Vault in the other tenant"""
    secret, error = fetch_secret(app.config, credential_cache, show_trace=app.config["SHOW_ERROR_TRACE"])
    return render_template('vault.html', secret=secret, error=error)


@app.route("/health")
def health():
    """Health check endpoint"""
    return jsonify({"status": "healthy"}), 200


def _comment_store():
    """Build the comment store from current configuration"""
    return CommentStore(
        StorageConfig.from_mapping(app.config),
        IdentityConfig.from_mapping(app.config),
        credential_cache,
    )


def _graph_client(access_token):
    return GraphClient(access_token, endpoint=app.config["GRAPH_ENDPOINT"])


def _load_cache():
    """Load token cache from session"""
    cache = msal.SerializableTokenCache()
    if session.get("token_cache"):
        cache.deserialize(session["token_cache"])
    return cache


def _save_cache(cache):
    """Save token cache to session"""
    if cache.has_state_changed:
        session["token_cache"] = cache.serialize()


def _build_msal_app(cache=None, authority=None):
    """
    Build a ConfidentialClientApplication instance using Managed Identity

    Instead of using a client secret, the managed identity token is presented as
    the client assertion for the app registration via its federated credential.
    If MANAGED_IDENTITY_CLIENT_ID is not set, the system-assigned identity is used.
    """
    return msal.ConfidentialClientApplication(
        app.config["CLIENT_ID"],
        authority=authority or app.config["AUTHORITY"],
        client_credential={
            "client_assertion": managed_identity_assertion(app.config["MANAGED_IDENTITY_CLIENT_ID"])
        },
        token_cache=cache
    )


def _get_token_from_cache(scope=None):
    """Attempt to retrieve a token from the cache"""
    cache = _load_cache()
    auth_app = _build_msal_app(cache=cache)

    accounts = auth_app.get_accounts()
    if accounts:
        result = auth_app.acquire_token_silent(scope, account=accounts[0])
        _save_cache(cache)
        return result

    return None


if __name__ == "__main__":
    port = int(app_config.PORT)
    app.run(host='0.0.0.0', port=port, debug=True)
