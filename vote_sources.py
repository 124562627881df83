"""
Vote sources for a PollDaddy (Crowdsignal) poll widget.

Every source exposes fetch_votes(), which returns a dict mapping candidate
name to current vote count. A source never raises to its caller: network
errors, browser errors and missing elements are reported on the console and
produce an empty dict. Candidates whose vote text cannot be parsed are
skipped individually.

Three strategies are available:
- HttpScriptSource: fetch the widget's vote-js.php payload with requests and
  extract title="NAME" ... (NUMBER votes) pairs with a regex
- ScriptInjectionSource: load the poll script into a blank headless Chrome
  page, call the widget's PD_vote<id>(1) results callback and parse the
  rendered results
- WidgetPageSource: open a page that embeds the widget, click its
  "View Results" link and parse the rendered results

Dependencies:
- requests: HTTP requests
- beautifulsoup4: HTML parsing
- selenium: Browser automation (only for the two browser strategies)
- ChromeDriver: Required for Selenium (PATH, common locations or CHROMEDRIVER_PATH)
"""

import os
import platform
import re
import time

import requests
from bs4 import BeautifulSoup

from console import debug_print, debug_traceback, display_error_message

POLL_ID = 15909793
POLL_SCRIPT_URL = "https://secure.polldaddy.com/p/{poll_id}.js"
VOTE_JS_URL = "https://polls.polldaddy.com/vote-js.php?p={poll_id}"
RESULTS_TIMEOUT = 15  # seconds to wait for the results to render or the HTTP response
RENDER_SETTLE_DELAY = 1  # seconds to let the results finish rendering
SCRIPT_POLL_INTERVAL = 0.3  # seconds between checks for the widget's vote function

REQUEST_HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': '*/*',
    'Accept-Language': 'en-US,en;q=0.5',
}

STRATEGIES = ('http', 'script', 'widget')

# Pattern used by the vote-js.php payload, e.g.
#   title="Jane Doe" ... <span class="pds-feedback-votes"> (1,234 votes)</span>
# The count span may not run into the next candidate's title attribute
NAME_VOTE_PATTERN = re.compile(r'title="([^"]+)"(?:(?!title=")[\s\S])*?\(([^)]*?)\s*votes\)')
COUNT_PATTERN = re.compile(r'\d[\d,.]*')


def parse_vote_count(text):
    """
    Parse a vote count such as "(1,234 votes)" into an integer.

    Thousands separators (commas and dots) are removed before conversion.

    Args:
        text (str): Raw vote text from the widget

    Returns:
        int: Parsed vote count
        None: If the text contains no number
    """
    if not text:
        return None
    match = COUNT_PATTERN.search(text)
    if not match:
        return None
    return int(match.group(0).replace(',', '').replace('.', ''))


def extract_votes_from_html(html_content):
    """
    Extract candidate vote counts from rendered widget results HTML.

    Each result is a .pds-feedback-group element. The candidate name comes
    from the first element carrying a title attribute (falling back to the
    .pds-answer-text text) and the count from .pds-feedback-votes.

    Args:
        html_content (str): HTML of the page showing the poll results

    Returns:
        dict: Mapping of candidate name to vote count. Groups with a missing
            name or unparseable count are skipped; no groups gives {}.
    """
    votes = {}
    soup = BeautifulSoup(html_content, 'html.parser')

    for group in soup.find_all(class_='pds-feedback-group'):
        name = None
        titled = group.find(attrs={'title': True})
        if titled is not None:
            name = titled['title'].strip()
        if not name:
            answer_text = group.find(class_='pds-answer-text')
            if answer_text is not None:
                name = answer_text.get_text(strip=True)
        if not name:
            debug_print("Skipping result group without a candidate name")
            continue

        votes_elem = group.find(class_='pds-feedback-votes')
        count = parse_vote_count(votes_elem.get_text() if votes_elem is not None else '')
        if count is None:
            debug_print(f"Skipping {name}: no vote count found")
            continue

        votes[name] = count

    return votes


def extract_votes_from_script(text):
    """
    Extract candidate vote counts from the widget's vote-js.php payload.

    Args:
        text (str): Script body returned by the widget endpoint

    Returns:
        dict: Mapping of candidate name to vote count, {} if nothing matched
    """
    votes = {}
    for match in NAME_VOTE_PATTERN.finditer(text):
        name = match.group(1).strip()
        count = parse_vote_count(match.group(2))
        if not name or count is None:
            debug_print(f"Skipping unparseable match: {match.group(0)[:80]!r}")
            continue
        votes[name] = count
    return votes


class HttpScriptSource:
    """Fetch the widget's backing script over HTTP and parse it."""

    name = 'http'

    def __init__(self, poll_id=POLL_ID, timeout=RESULTS_TIMEOUT, session=None):
        self.poll_id = poll_id
        self.timeout = timeout
        self.session = session or requests

    @property
    def url(self):
        return VOTE_JS_URL.format(poll_id=self.poll_id)

    def fetch_votes(self):
        try:
            response = self.session.get(self.url, headers=REQUEST_HEADERS, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            display_error_message(f"Error fetching votes: {e}", source="fetchVotes")
            return {}

        votes = extract_votes_from_script(response.text)
        if not votes:
            display_error_message(f"No candidates found in response from {self.url}", source="fetchVotes")
        debug_print(f"Extracted {len(votes)} candidates from {self.url}")
        return votes


def _common_chromedriver_paths():
    if platform.system() == 'Windows':
        program_files = os.environ.get('ProgramFiles', 'C:\\Program Files')
        local_appdata = os.environ.get('LOCALAPPDATA', os.path.expanduser('~\\AppData\\Local'))
        return [
            os.path.join(program_files, 'chromedriver', 'chromedriver.exe'),
            os.path.join(local_appdata, 'chromedriver', 'chromedriver.exe'),
            'chromedriver.exe',
        ]
    return [
        '/usr/local/bin/chromedriver',      # macOS Intel (Homebrew default)
        '/opt/homebrew/bin/chromedriver',   # macOS Apple Silicon (Homebrew default)
        '/usr/bin/chromedriver',
        os.path.expanduser('~/chromedriver'),
    ]


def create_chrome_driver():
    """
    Start a headless Chrome WebDriver.

    ChromeDriver is looked up in the CHROMEDRIVER_PATH environment variable,
    then in common install locations, and finally through selenium-manager.

    Returns:
        WebDriver: A running Chrome driver; the caller must quit() it
    """
    from selenium import webdriver
    from selenium.webdriver.chrome.options import Options
    from selenium.webdriver.chrome.service import Service

    chrome_options = Options()
    chrome_options.add_argument('--headless=new')
    chrome_options.add_argument('--no-sandbox')
    chrome_options.add_argument('--disable-setuid-sandbox')
    chrome_options.add_argument('--disable-dev-shm-usage')

    chromedriver_path = os.environ.get('CHROMEDRIVER_PATH')
    if chromedriver_path and not os.path.exists(chromedriver_path):
        debug_print(f"Warning: CHROMEDRIVER_PATH set but file not found: {chromedriver_path}")
        chromedriver_path = None

    if chromedriver_path is None:
        for path in _common_chromedriver_paths():
            if os.path.exists(path) and (platform.system() == 'Windows' or os.access(path, os.X_OK)):
                chromedriver_path = path
                break

    if chromedriver_path:
        debug_print(f"Using ChromeDriver from: {chromedriver_path}")
        return webdriver.Chrome(service=Service(chromedriver_path), options=chrome_options)

    debug_print("ChromeDriver not found in common locations, trying selenium-manager (PATH lookup)...")
    return webdriver.Chrome(options=chrome_options)


class _BrowserSource:
    """
    Shared driver lifecycle for the Selenium strategies.

    Subclasses implement _show_results(driver), leaving the driver on a page
    where the .pds-feedback-group results are rendered.
    """

    name = None

    def __init__(self, poll_id=POLL_ID, timeout=RESULTS_TIMEOUT, driver_factory=None):
        self.poll_id = poll_id
        self.timeout = timeout
        self.driver_factory = driver_factory or create_chrome_driver

    def _wait_for_results(self, driver):
        from selenium.webdriver.common.by import By
        from selenium.webdriver.support import expected_conditions as EC
        from selenium.webdriver.support.ui import WebDriverWait

        print("[Scraper] ⏳ Waiting for vote results...")
        WebDriverWait(driver, self.timeout).until(
            EC.presence_of_element_located((By.CSS_SELECTOR, '.pds-feedback-group'))
        )
        time.sleep(RENDER_SETTLE_DELAY)

    def _show_results(self, driver):
        raise NotImplementedError

    def fetch_votes(self):
        driver = None
        fetch_start = time.time()
        try:
            try:
                driver = self.driver_factory()
            except ImportError:
                display_error_message("Selenium not installed. Install with: pip install selenium", source=self.name)
                return {}

            html_content = self._show_results(driver)
            votes = extract_votes_from_html(html_content)
            if not votes:
                display_error_message("Results rendered but no candidates could be extracted", source=self.name)
            return votes

        except Exception as e:
            display_error_message(f"Selenium error: {e}", source=self.name)
            debug_traceback()
            return {}

        finally:
            debug_print(f"[PERF] {self.name} fetch completed in {time.time() - fetch_start:.2f} seconds")
            if driver is not None:
                try:
                    driver.quit()
                    debug_print("[CLEANUP] WebDriver cleaned up successfully")
                except Exception as cleanup_error:
                    debug_print(f"[CLEANUP] WebDriver.quit() failed: {cleanup_error}")


class ScriptInjectionSource(_BrowserSource):
    """Inject the poll script into a blank page and trigger its results view."""

    name = 'script'

    @property
    def script_url(self):
        return POLL_SCRIPT_URL.format(poll_id=self.poll_id)

    def _page_html(self):
        return (
            '<html><head>'
            f'<script src="{self.script_url}"></script>'
            '</head><body></body></html>'
        )

    def _show_results(self, driver):
        from selenium.webdriver.support.ui import WebDriverWait

        driver.get('about:blank')
        driver.execute_script('document.open(); document.write(arguments[0]); document.close();', self._page_html())

        vote_function = f'PD_vote{self.poll_id}'
        debug_print(f"Waiting for {vote_function} to be defined...")
        WebDriverWait(driver, self.timeout, poll_frequency=SCRIPT_POLL_INTERVAL).until(
            lambda d: d.execute_script(f"return typeof window['{vote_function}'] === 'function';")
        )
        # Argument 1 asks the widget to show results instead of casting a vote
        driver.execute_script(f"window['{vote_function}'](1);")

        self._wait_for_results(driver)
        return driver.page_source


class WidgetPageSource(_BrowserSource):
    """Open a page embedding the widget and click its "View Results" link."""

    name = 'widget'

    def __init__(self, page_url, poll_id=POLL_ID, timeout=RESULTS_TIMEOUT, driver_factory=None):
        super().__init__(poll_id=poll_id, timeout=timeout, driver_factory=driver_factory)
        self.page_url = page_url

    def _click_view_results(self, driver):
        from selenium.webdriver.common.by import By

        links = driver.find_elements(By.CSS_SELECTOR, '.pds-view-results')
        if links:
            driver.execute_script("arguments[0].click();", links[0])
            return True
        return False

    def _show_results(self, driver):
        from selenium.webdriver.common.by import By
        from selenium.webdriver.support.ui import WebDriverWait

        driver.get(self.page_url)
        WebDriverWait(driver, self.timeout).until(
            lambda d: d.execute_script("return document.readyState") == "complete"
        )

        if not self._click_view_results(driver):
            # Embedded widgets are often rendered inside an iframe
            clicked = False
            for frame in driver.find_elements(By.TAG_NAME, 'iframe'):
                driver.switch_to.frame(frame)
                if self._click_view_results(driver):
                    clicked = True
                    break
                driver.switch_to.default_content()
            if not clicked:
                debug_print("No 'View Results' link found, waiting for results to render anyway")

        self._wait_for_results(driver)
        return driver.page_source


def create_source(strategy='http', poll_id=POLL_ID, page_url=None, timeout=RESULTS_TIMEOUT):
    """
    Build the vote source for a strategy name.

    Args:
        strategy (str): One of 'http', 'script' or 'widget'
        poll_id (int): Numeric PollDaddy poll identifier
        page_url (str, optional): Page embedding the widget, required for 'widget'
        timeout (float): Seconds to wait for the results

    Returns:
        object: A source with a fetch_votes() method

    Raises:
        ValueError: If the strategy is unknown or 'widget' has no page_url
    """
    if strategy == 'http':
        return HttpScriptSource(poll_id=poll_id, timeout=timeout)
    if strategy == 'script':
        return ScriptInjectionSource(poll_id=poll_id, timeout=timeout)
    if strategy == 'widget':
        if not page_url:
            raise ValueError("the 'widget' strategy requires a page URL")
        return WidgetPageSource(page_url, poll_id=poll_id, timeout=timeout)
    raise ValueError(f"unknown strategy {strategy!r}, expected one of {', '.join(STRATEGIES)}")
