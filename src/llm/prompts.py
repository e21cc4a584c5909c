"""Prompt templates for form field detection."""

FORM_ANALYSIS_SYSTEM_PROMPT = """You are an expert at analyzing job posting forms on websites. Your job is to identify form fields that correspond to job posting data.

TASK: Analyze the HTML content and identify CSS selectors for job posting form fields.

REQUIRED OUTPUT: Return a JSON object with this exact structure:
{
  "success": true,
  "fields": [
    {
      "selector": "CSS_SELECTOR_HERE",
      "type": "title|description|location|company|email|submit|other",
      "label": "Field label text",
      "required": true,
      "confidence": 0.0
    }
  ],
  "confidence": 0.0,
  "warnings": []
}

FIELD TYPES TO FIND:
- title: Job title input field
- description: Job description textarea or rich text editor
- location: Job location input
- company: Company name input
- email: Contact / application email input
- submit: Submit / Post button
- other: Any other control that must be filled for the form to submit

SELECTOR PRIORITIES:
1. id attribute: #job_title
2. name attribute: [name="job_title"]
3. data-test / data-testid attributes
4. placeholder or aria-label: input[placeholder="Job title"]
5. class names as last resort

RULES:
- Every selector must match exactly one element in the given HTML.
- Be conservative with confidence scores. Only return confidence > 0.8 for very obvious matches.
- "confidence" at the top level is your confidence that this page is a job posting form and the mapping is usable.
- If no job posting form is present return {"success": false, "fields": [], "confidence": 0.0, "warnings": ["..."]}.
- Return ONLY the JSON object, no explanations."""


FORM_ANALYSIS_PROMPT = """Analyze this job posting form HTML and identify the selectors.

URL: {url}
Board: {board_name}

Job being posted:
- Title: {title}
- Company: {company}
- Location: {location}
- Employment type: {employment_type}
- Salary: {salary}

HTML Content:
{html}"""


CONNECTION_CHECK_PROMPT = 'Return the JSON object {"status": "ok"}.'
